from __future__ import annotations

import json
import platform
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator

from .config import BenchConfig
from .model import SweepResult

SCHEMA_VERSION = "0.1.0"


def _default_results_schema_path() -> Path:
    return Path(__file__).resolve().parent / "results.schema.json"


def validate_results_schema(results: dict[str, Any], *, schema_path: Path | None = None) -> None:
    schema_path = _default_results_schema_path() if schema_path is None else schema_path
    schema = json.loads(schema_path.read_text())
    Draft202012Validator(schema).validate(results)


def build_results(
    *,
    run_id: str,
    started_at: str,
    finished_at: str,
    device: dict[str, Any],
    config: BenchConfig,
    sweeps: Sequence[SweepResult],
) -> dict[str, Any]:
    run_obj = {
        "run_id": run_id,
        "started_at": started_at,
        "finished_at": finished_at,
        "status": "pass",
        "environment": {
            "platform": {"os": platform.system().lower(), "arch": platform.machine().lower()},
            "opencl": device,
        },
        "config": config.to_dict(),
        "duration_unit": "ns",
    }
    out = {"schema_version": SCHEMA_VERSION, "run": run_obj, "sweeps": [s.to_dict() for s in sweeps]}
    validate_results_schema(out)
    return out


def load_results(path: Path) -> dict[str, Any]:
    return json.loads(path.read_text())


def write_results(path: Path, results: dict[str, Any]) -> None:
    path.write_text(json.dumps(results, indent=2, sort_keys=True) + "\n")
