from __future__ import annotations

from pathlib import Path
from typing import Any

from mdutils.mdutils import MdUtils  # type: ignore[import-untyped]

from .export import load_results

REPORT_TITLE = "OpenCL Kernel Sweep Report"

_AXIS_LABELS = {
    "inner_work": "Inner-work sweep (iteration count)",
    "parallelism": "Parallelism sweep (worker count)",
}


def _format_ms(duration_ns: int) -> str:
    return f"{duration_ns / 1e6:.3f}"


def _format_ratio(v: float | None) -> str:
    if v is None:
        return "NA"
    return f"{v:.3f}"


def sweep_table_cells(sweep: dict[str, Any]) -> list[str]:
    """Flattened table cells (header row first) for one sweep."""
    cells = ["value", "duration_ns", "duration_ms", "ratio_to_first"]
    points = sweep.get("points", []) or []
    first = points[0]["duration_ns"] if points else None
    for p in points:
        d = int(p["duration_ns"])
        ratio = None if not first else d / first
        cells += [str(p["value"]), str(d), _format_ms(d), _format_ratio(ratio)]
    return cells


def write_report(results: dict[str, Any], *, out_dir: Path) -> Path:
    run = results.get("run", {})
    opencl = run.get("environment", {}).get("opencl", {})
    md = MdUtils(file_name=str(out_dir / "report"), title=REPORT_TITLE)

    md.new_header(level=1, title="Run")
    md.new_list(
        [
            f"Run id: `{run.get('run_id', '')}`",
            f"Status: `{run.get('status', '')}`",
            f"Platform: `{opencl.get('platform', {}).get('name', 'unknown')}`",
            f"Device: `{opencl.get('device', {}).get('name', 'unknown')}`",
            f"Duration unit: `{run.get('duration_unit', 'ns')}` (device clock)",
        ]
    )

    for sweep in results.get("sweeps", []) or []:
        axis = str(sweep.get("axis"))
        fixed = sweep.get("fixed", {})
        md.new_header(level=1, title=_AXIS_LABELS.get(axis, axis))
        md.new_paragraph(f"Fixed `{fixed.get('name')}` = `{fixed.get('value')}`.")
        cells = sweep_table_cells(sweep)
        md.new_table(columns=4, rows=len(cells) // 4, text=cells, text_align="right")

    md.create_md_file()
    return out_dir / "report.md"


def report_run(*, out_dir: Path) -> int:
    results_path = out_dir / "results.json"
    if not results_path.exists():
        raise FileNotFoundError(f"Missing results.json at {results_path}")

    write_report(load_results(results_path), out_dir=out_dir)
    return 0
