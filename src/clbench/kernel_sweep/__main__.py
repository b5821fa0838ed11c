from __future__ import annotations

import argparse
import sys
from pathlib import Path

import attrs

from . import prereqs, workflow
from .config import BenchConfig, SweepRange
from .report import report_run

SWEEP_CMDS: dict[str, tuple[str, ...]] = {
    "inner": ("inner_work",),
    "parallelism": ("parallelism",),
    "both": ("inner_work", "parallelism"),
}


def _abs_path(p: str) -> Path:
    return Path(p).expanduser().resolve()


def _sweep_range(v: str) -> SweepRange:
    try:
        return SweepRange.from_axis_value(v)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def _add_config_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--buffer-len", type=int, default=None, help="Device buffer length in bytes.")
    p.add_argument("--workers", type=int, default=None, help="Worker count held fixed during the inner-work sweep.")
    p.add_argument("--iterations", type=int, default=None, help="Iteration count held fixed during the parallelism sweep.")
    p.add_argument("--inner-range", type=_sweep_range, default=None, help="Inner-work sweep as start:end:step.")
    p.add_argument("--parallelism-range", type=_sweep_range, default=None, help="Parallelism sweep as start:end:step.")
    p.add_argument("--payload", default=None, help="Text repeated cyclically to fill the buffer.")
    p.add_argument("--kernel-source", type=_abs_path, default=None, help="OpenCL C source file replacing the built-in kernel.")
    p.add_argument("--entry-name", default=None, help="Kernel entry point (default: kerntest).")
    p.add_argument("--verbose", action="store_true", help="Print device and lifecycle notes to stderr.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clbench.kernel_sweep",
        description="Time an OpenCL kernel across inner-work and parallelism sweeps using device-clock profiling.",
    )
    sub = parser.add_subparsers(dest="cmd", required=True)

    inner = sub.add_parser("inner", help="Sweep the kernel iteration count (default when no command is given).")
    parallelism = sub.add_parser("parallelism", help="Sweep the number of work items per launch.")
    both = sub.add_parser("both", help="Run the inner-work sweep, then the parallelism sweep.")
    for p in (inner, parallelism, both):
        _add_config_args(p)
        p.add_argument("--out-dir", type=_abs_path, default=None, help="Write results.json into this directory.")

    roundtrip = sub.add_parser("roundtrip", help="Upload, run zero iterations, download and compare.")
    _add_config_args(roundtrip)

    check = sub.add_parser("check", help="Check that an OpenCL platform and device are available.")
    check.add_argument("--out-dir", type=_abs_path, default=None)

    report = sub.add_parser("report", help="Generate report.md from an existing results.json.")
    report.add_argument("--out-dir", type=_abs_path, required=True)

    return parser


def build_config(ns: argparse.Namespace) -> BenchConfig:
    overrides = {
        "buffer_len": ns.buffer_len,
        "default_workers": ns.workers,
        "default_iterations": ns.iterations,
        "inner_range": ns.inner_range,
        "parallelism_range": ns.parallelism_range,
        "payload_text": ns.payload,
        "entry_name": ns.entry_name,
        "kernel_source": None if ns.kernel_source is None else ns.kernel_source.read_text(),
    }
    return attrs.evolve(BenchConfig(), **{k: v for k, v in overrides.items() if v is not None})


def _default_argv(argv: list[str]) -> list[str]:
    # Bare invocation (or options only) runs the inner-work sweep.
    if not argv or (argv[0].startswith("-") and argv[0] not in {"-h", "--help"}):
        return ["inner", *argv]
    return argv


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    ns = parser.parse_args(_default_argv(list(sys.argv[1:] if argv is None else argv)))

    if ns.cmd in SWEEP_CMDS or ns.cmd == "roundtrip":
        try:
            config = build_config(ns)
        except (OSError, ValueError) as e:
            parser.error(str(e))
        if ns.cmd == "roundtrip":
            return workflow.roundtrip(config=config, verbose=ns.verbose)
        return workflow.run(config=config, axes=SWEEP_CMDS[ns.cmd], out_dir=ns.out_dir, verbose=ns.verbose)
    if ns.cmd == "check":
        checks = prereqs.check_all(out_dir=ns.out_dir)
        if any(c.status == "fail" for c in checks):
            print(prereqs.format_prereq_failures(checks), file=sys.stderr)
            return 2
        return 0
    if ns.cmd == "report":
        return report_run(out_dir=ns.out_dir)

    raise AssertionError(f"Unhandled cmd: {ns.cmd}")


if __name__ == "__main__":
    raise SystemExit(main())
