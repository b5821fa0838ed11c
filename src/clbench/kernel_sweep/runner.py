"""
Kernel launch and sweep orchestration.

The runner drives one `CompiledKernel` strictly sequentially: every launch is
waited on and its device-clock timestamps are read before the next kernel
argument mutation. Durations are reported in nanoseconds, as returned by
OpenCL event profiling.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Any

import attrs
import numpy as np
import pyopencl as cl

from .config import SWEEP_AXES, BenchConfig, SweepRange
from .errors import (
    CL_INVALID_GLOBAL_WORK_SIZE,
    CL_INVALID_KERNEL_ARGS,
    CL_INVALID_VALUE,
    CL_PROFILING_INFO_NOT_AVAILABLE,
    ClBenchError,
    LaunchError,
    ProfilingQueryError,
    TransferError,
    translate,
)
from .kernel import CompiledKernel
from .model import LaunchRecord, SweepPoint, SweepResult


@attrs.define(frozen=True, slots=True)
class UploadToken:
    """Completion token of a non-blocking host-to-device write.

    Holds the host copy of the data so it stays alive until the write completes.
    """

    event: Any
    host: np.ndarray

    def wait(self) -> None:
        try:
            self.event.wait()
        except cl.Error as e:
            raise translate(e, TransferError, "clWaitForEvents") from e


class BenchmarkRunner:
    def __init__(self, config: BenchConfig) -> None:
        self.config = config
        self._pending_uploads: list[UploadToken] = []

    def upload(self, kernel: CompiledKernel, host_bytes: bytes) -> UploadToken:
        if len(host_bytes) > kernel.buffer_len:
            raise TransferError(
                "clEnqueueWriteBuffer",
                CL_INVALID_VALUE,
                f"payload of {len(host_bytes)} bytes exceeds buffer of {kernel.buffer_len} bytes",
            )
        host = np.frombuffer(host_bytes, dtype=np.uint8).copy()
        try:
            event = cl.enqueue_copy(kernel.device.queue, kernel.buffer, host, is_blocking=False)
        except cl.Error as e:
            raise translate(e, TransferError, "clEnqueueWriteBuffer") from e
        token = UploadToken(event=event, host=host)
        self._pending_uploads.append(token)
        return token

    def _take_wait_list(self) -> list[Any]:
        wait_for = [t.event for t in self._pending_uploads]
        self._pending_uploads.clear()
        return wait_for

    def launch_and_time(self, kernel: CompiledKernel, worker_count: int) -> LaunchRecord:
        """Launch `worker_count` work items, block until done and return the device timestamps."""
        if worker_count <= 0:
            raise LaunchError(
                "clEnqueueNDRangeKernel", CL_INVALID_GLOBAL_WORK_SIZE, f"worker_count must be > 0 (got {worker_count})"
            )
        if kernel.scalar_param is None:
            raise LaunchError("clEnqueueNDRangeKernel", CL_INVALID_KERNEL_ARGS, "scalar parameter was never bound")

        try:
            event = cl.enqueue_nd_range_kernel(
                kernel.device.queue,
                kernel.kernel,
                (worker_count,),
                None,
                wait_for=self._take_wait_list() or None,
            )
        except cl.Error as e:
            raise translate(e, LaunchError, "clEnqueueNDRangeKernel") from e
        try:
            event.wait()
        except cl.Error as e:
            raise translate(e, LaunchError, "clWaitForEvents") from e

        try:
            start = int(event.profile.start)
        except cl.Error as e:
            raise translate(e, ProfilingQueryError, "clGetEventProfilingInfo (COMMAND_START)") from e
        try:
            end = int(event.profile.end)
        except cl.Error as e:
            raise translate(e, ProfilingQueryError, "clGetEventProfilingInfo (COMMAND_END)") from e

        if end < start:
            raise ProfilingQueryError(
                "clGetEventProfilingInfo (COMMAND_END)",
                CL_PROFILING_INFO_NOT_AVAILABLE,
                f"end timestamp {end} precedes start timestamp {start}",
            )
        return LaunchRecord(worker_count=worker_count, start_ns=start, end_ns=end)

    def sweep_inner_work(self, kernel: CompiledKernel, sweep_range: SweepRange | None = None) -> Iterator[SweepPoint]:
        """Vary the iteration count with the worker count fixed at `config.default_workers`."""
        sweep_range = self.config.inner_range if sweep_range is None else sweep_range
        workers = self.config.default_workers
        for value in sweep_range.values():
            try:
                kernel.set_scalar_param(value)
                record = self.launch_and_time(kernel, workers)
            except ClBenchError as e:
                e.at_sweep_point("inner_work", value)
                raise
            yield SweepPoint(value=value, duration_ns=record.duration_ns)

    def sweep_parallelism(self, kernel: CompiledKernel, sweep_range: SweepRange | None = None) -> Iterator[SweepPoint]:
        """Vary the worker count with the iteration count fixed at `config.default_iterations`."""
        sweep_range = self.config.parallelism_range if sweep_range is None else sweep_range
        kernel.set_scalar_param(self.config.default_iterations)
        for workers in sweep_range.values():
            try:
                record = self.launch_and_time(kernel, workers)
            except ClBenchError as e:
                e.at_sweep_point("parallelism", workers)
                raise
            yield SweepPoint(value=workers, duration_ns=record.duration_ns)

    def collect(
        self,
        axis: str,
        kernel: CompiledKernel,
        sweep_range: SweepRange | None = None,
        *,
        on_point: Callable[[SweepPoint], None] | None = None,
    ) -> SweepResult:
        """Run one sweep to completion and bundle its points with the fixed axis value."""
        if axis not in SWEEP_AXES:
            raise KeyError(f"Unknown sweep axis={axis!r}. Known: {list(SWEEP_AXES)}")
        sweep_range = self.config.range_for(axis) if sweep_range is None else sweep_range
        if axis == "inner_work":
            points_iter = self.sweep_inner_work(kernel, sweep_range)
            fixed_name, fixed_value = "worker_count", self.config.default_workers
        else:
            points_iter = self.sweep_parallelism(kernel, sweep_range)
            fixed_name, fixed_value = "iterations", self.config.default_iterations

        points: list[SweepPoint] = []
        for p in points_iter:
            points.append(p)
            if on_point is not None:
                on_point(p)
        return SweepResult(
            axis=axis,
            fixed_name=fixed_name,
            fixed_value=fixed_value,
            sweep_range=sweep_range,
            points=tuple(points),
        )

    def download(self, kernel: CompiledKernel, expected_len: int) -> bytes:
        """Blocking read of the first `expected_len` bytes of the kernel's buffer."""
        if expected_len < 0 or expected_len > kernel.buffer_len:
            raise TransferError(
                "clEnqueueReadBuffer",
                CL_INVALID_VALUE,
                f"cannot read {expected_len} bytes from buffer of {kernel.buffer_len} bytes",
            )
        if expected_len == 0:
            return b""
        host = np.empty(expected_len, dtype=np.uint8)
        try:
            cl.enqueue_copy(
                kernel.device.queue,
                host,
                kernel.buffer,
                is_blocking=True,
                wait_for=self._take_wait_list() or None,
            )
        except cl.Error as e:
            raise translate(e, TransferError, "clEnqueueReadBuffer") from e
        return host.tobytes()
