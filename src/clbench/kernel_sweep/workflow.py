from __future__ import annotations

import json
import sys
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path

from . import export
from .config import BenchConfig, fill_payload
from .device import DeviceHandle
from .errors import ClBenchError
from .kernel import CompiledKernel
from .model import SweepPoint, SweepResult
from .runner import BenchmarkRunner


def _now_rfc3339() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def _default_run_id() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%SZ")


def _note(verbose: bool, msg: str) -> None:
    if verbose:
        print(msg, file=sys.stderr)


def _emit_point(p: SweepPoint) -> None:
    print(p.to_tsv(), flush=True)


def _build_kernel(dev: DeviceHandle, config: BenchConfig) -> CompiledKernel:
    return CompiledKernel.build(
        dev,
        config.kernel_source,
        config.entry_name,
        config.buffer_len,
        options=config.build_options(),
    )


def run(*, config: BenchConfig, axes: Sequence[str], out_dir: Path | None = None, verbose: bool = False) -> int:
    """Run the requested sweeps on the default device, streaming `<value>\\t<duration_ns>` lines to stdout.

    The first OpenCL failure aborts the run with a one-line diagnostic on stderr
    and exit code 1; no partial results.json is written.
    """
    started_at = _now_rfc3339()
    sweeps: list[SweepResult] = []
    try:
        with DeviceHandle.acquire() as dev:
            device_info = dev.describe()
            _note(verbose, f"Device: {json.dumps(device_info, sort_keys=True)}")
            with _build_kernel(dev, config) as kernel:
                runner = BenchmarkRunner(config)
                runner.upload(kernel, fill_payload(config.payload_text, config.buffer_len)).wait()
                for axis in axes:
                    _note(verbose, f"Sweep {axis}: {config.range_for(axis).to_dict()}")
                    sweeps.append(runner.collect(axis, kernel, on_point=_emit_point))
                message = runner.download(kernel, config.buffer_len)
                _note(verbose, f"Message read: {message.decode(errors='replace')}")
            _note(verbose, "Kernel released")
        _note(verbose, "Device released")
    except ClBenchError as e:
        print(e.diagnostic(), file=sys.stderr)
        if e.sweep_axis is not None:
            _note(verbose, f"Failed at {e.sweep_axis}={e.sweep_value}")
        if e.detail:
            _note(verbose, e.detail)
        return 1

    if out_dir is not None:
        out_dir.mkdir(parents=True, exist_ok=True)
        results = export.build_results(
            run_id=_default_run_id(),
            started_at=started_at,
            finished_at=_now_rfc3339(),
            device=device_info,
            config=config,
            sweeps=sweeps,
        )
        export.write_results(out_dir / "results.json", results)
        _note(verbose, f"Results: {out_dir / 'results.json'}")
    return 0


def roundtrip(*, config: BenchConfig, verbose: bool = False) -> int:
    """Upload the payload, launch once with zero iterations and read it back unchanged."""
    payload = fill_payload(config.payload_text, config.buffer_len)
    try:
        with DeviceHandle.acquire() as dev:
            with _build_kernel(dev, config) as kernel:
                runner = BenchmarkRunner(config)
                runner.upload(kernel, payload).wait()
                kernel.set_scalar_param(0)
                record = runner.launch_and_time(kernel, config.default_workers)
                message = runner.download(kernel, len(payload))
    except ClBenchError as e:
        print(e.diagnostic(), file=sys.stderr)
        if e.detail:
            _note(verbose, e.detail)
        return 1

    print(f"Message read: {message.decode(errors='replace')}", flush=True)
    _note(verbose, f"Kernel execution time: {record.duration_ns}")
    if message != payload:
        print("Round trip mismatch: downloaded bytes differ from the uploaded payload", file=sys.stderr)
        return 1
    return 0
