"""
OpenCL device acquisition.

A `DeviceHandle` owns the platform/device selection, one context and one
in-order command queue with profiling enabled at creation time. Kernels built
from the handle register themselves so the handle can refuse to release while
they are still live.
"""

from __future__ import annotations

from collections.abc import Sequence
from types import TracebackType
from typing import Any

import pyopencl as cl

from .errors import (
    CL_DEVICE_NOT_FOUND,
    CL_PLATFORM_NOT_FOUND_KHR,
    ClBenchError,
    ContextCreationFailed,
    DeviceUnavailable,
    HandleReleased,
    ReleaseFailed,
    UNKNOWN_STATUS,
    translate,
)


def release_backend_object(obj: Any, operation: str) -> None:
    """Release a pyopencl object eagerly when it supports it.

    Objects without an explicit `release()` are freed by pyopencl when the
    last reference goes away, so callers drop their reference afterwards.
    """
    release = getattr(obj, "release", None)
    if not callable(release):
        return
    try:
        release()
    except cl.Error as e:
        raise translate(e, ReleaseFailed, operation) from e


def release_in_order(steps: Sequence[tuple[Any, str]]) -> None:
    """Release `(object, operation)` pairs in order, attempting all; raise the first failure."""
    first: ReleaseFailed | None = None
    for obj, operation in steps:
        try:
            release_backend_object(obj, operation)
        except ReleaseFailed as e:
            if first is None:
                first = e
    if first is not None:
        raise first


class DeviceHandle:
    def __init__(self, *, platform: Any, device: Any, context: Any, queue: Any) -> None:
        self._platform = platform
        self._device = device
        self._context = context
        self._queue = queue
        self._kernels: list[Any] = []
        self._released = False

    @classmethod
    def acquire(cls) -> "DeviceHandle":
        """Select the first platform and its first device, then create context and queue."""
        try:
            platforms = cl.get_platforms()
        except cl.Error as e:
            raise translate(e, DeviceUnavailable, "clGetPlatformIDs") from e
        if not platforms:
            raise DeviceUnavailable("clGetPlatformIDs", CL_PLATFORM_NOT_FOUND_KHR, "no OpenCL platform found")
        platform = platforms[0]

        try:
            devices = platform.get_devices(device_type=cl.device_type.ALL)
        except cl.Error as e:
            raise translate(e, DeviceUnavailable, "clGetDeviceIDs") from e
        if not devices:
            raise DeviceUnavailable("clGetDeviceIDs", CL_DEVICE_NOT_FOUND, "platform exposes no device")
        device = devices[0]

        try:
            context = cl.Context(devices=[device], properties=[(cl.context_properties.PLATFORM, platform)])
        except cl.Error as e:
            raise translate(e, ContextCreationFailed, "clCreateContext") from e

        # Profiling must be requested here: some drivers reject per-operation profiling flags.
        try:
            queue = cl.CommandQueue(context, device, properties=cl.command_queue_properties.PROFILING_ENABLE)
        except cl.Error as e:
            release_backend_object(context, "clReleaseContext")
            raise translate(e, ContextCreationFailed, "clCreateCommandQueueWithProperties") from e

        return cls(platform=platform, device=device, context=context, queue=queue)

    @property
    def released(self) -> bool:
        return self._released

    def _require_live(self, operation: str) -> None:
        if self._released:
            raise HandleReleased(operation, UNKNOWN_STATUS, "device handle already released")

    @property
    def device(self) -> Any:
        self._require_live("clGetDeviceInfo")
        return self._device

    @property
    def context(self) -> Any:
        self._require_live("clGetContextInfo")
        return self._context

    @property
    def queue(self) -> Any:
        self._require_live("clGetCommandQueueInfo")
        return self._queue

    @property
    def live_kernels(self) -> int:
        return len(self._kernels)

    def register_kernel(self, kernel: Any) -> None:
        self._require_live("clCreateKernel")
        self._kernels.append(kernel)

    def unregister_kernel(self, kernel: Any) -> None:
        if kernel in self._kernels:
            self._kernels.remove(kernel)

    def describe(self) -> dict[str, Any]:
        self._require_live("clGetDeviceInfo")
        return {
            "platform": {
                "name": str(self._platform.name).strip(),
                "vendor": str(self._platform.vendor).strip(),
                "version": str(self._platform.version).strip(),
            },
            "device": {
                "name": str(self._device.name).strip(),
                "version": str(self._device.version).strip(),
                "max_compute_units": int(self._device.max_compute_units),
            },
        }

    def release(self) -> None:
        """Finish outstanding work and release the queue, then the context.

        Every step is attempted even when an earlier one fails; the first
        failure is raised once the handle is marked released.
        """
        if self._released:
            raise ReleaseFailed("clReleaseCommandQueue", UNKNOWN_STATUS, "device handle already released")
        if self._kernels:
            raise ReleaseFailed(
                "clReleaseContext", UNKNOWN_STATUS, f"{len(self._kernels)} kernel(s) built from this device are still live"
            )

        first: ClBenchError | None = None
        try:
            self._queue.finish()
        except cl.Error as e:
            first = translate(e, ReleaseFailed, "clFinish")
        try:
            release_in_order([(self._queue, "clReleaseCommandQueue"), (self._context, "clReleaseContext")])
        except ReleaseFailed as e:
            first = first or e
        finally:
            self._queue = None
            self._context = None
            self._released = True
        if first is not None:
            raise first

    def __enter__(self) -> "DeviceHandle":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._released:
            return
        if exc is None:
            self.release()
            return
        # The in-flight error is the one reported; teardown failures are dropped.
        try:
            self.release()
        except ClBenchError:
            pass
