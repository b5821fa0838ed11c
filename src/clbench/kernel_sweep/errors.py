from __future__ import annotations

# OpenCL status codes used when the failure is detected on the host side
# before (or instead of) a backend call.
CL_DEVICE_NOT_FOUND = -1
CL_PROFILING_INFO_NOT_AVAILABLE = -7
CL_INVALID_VALUE = -30
CL_INVALID_ARG_VALUE = -50
CL_INVALID_KERNEL_ARGS = -52
CL_INVALID_BUFFER_SIZE = -61
CL_INVALID_GLOBAL_WORK_SIZE = -63
CL_PLATFORM_NOT_FOUND_KHR = -1001

UNKNOWN_STATUS = -1


class ClBenchError(Exception):
    """A failed OpenCL operation.

    `operation` names the backend call (e.g. ``clEnqueueNDRangeKernel``) and
    `code` carries its status code. Sweeps attach `sweep_axis`/`sweep_value`
    to errors raised while processing a sweep point.
    """

    def __init__(self, operation: str, code: int, detail: str | None = None) -> None:
        self.operation = operation
        self.code = code
        self.detail = detail
        self.sweep_axis: str | None = None
        self.sweep_value: int | None = None
        super().__init__(self.diagnostic() if detail is None else f"{self.diagnostic()}: {detail}")

    def diagnostic(self) -> str:
        return f"{self.operation} call failed with return code: {self.code}"

    def at_sweep_point(self, axis: str, value: int) -> "ClBenchError":
        self.sweep_axis = axis
        self.sweep_value = value
        return self


class DeviceUnavailable(ClBenchError):
    pass


class ContextCreationFailed(ClBenchError):
    pass


class CompileError(ClBenchError):
    """Program build or entry-point lookup failed; `detail` holds the build log when available."""


class BufferAllocError(ClBenchError):
    pass


class ArgBindError(ClBenchError):
    pass


class TransferError(ClBenchError):
    pass


class LaunchError(ClBenchError):
    pass


class ProfilingQueryError(ClBenchError):
    pass


class ReleaseFailed(ClBenchError):
    pass


class HandleReleased(ClBenchError):
    """An operation was attempted on a device or kernel that has already been released."""


def status_code(exc: BaseException) -> int:
    """Best-effort extraction of the OpenCL status code from a pyopencl error."""
    code = getattr(exc, "code", None)
    if code is None:
        return UNKNOWN_STATUS
    try:
        return int(code)
    except (AttributeError, TypeError, ValueError):
        return UNKNOWN_STATUS


def translate(exc: BaseException, error_cls: type[ClBenchError], operation: str) -> ClBenchError:
    """Wrap a backend exception into the project's error taxonomy."""
    return error_cls(operation, status_code(exc), str(exc) or None)
