from __future__ import annotations

from collections.abc import Sequence
from types import TracebackType
from typing import Any

import numpy as np
import pyopencl as cl

from .device import DeviceHandle, release_in_order
from .errors import (
    CL_INVALID_ARG_VALUE,
    CL_INVALID_BUFFER_SIZE,
    UNKNOWN_STATUS,
    ArgBindError,
    BufferAllocError,
    ClBenchError,
    CompileError,
    HandleReleased,
    ReleaseFailed,
    translate,
)

DATA_ARG_INDEX = 0
SCALAR_ARG_INDEX = 1

_INT32 = np.iinfo(np.int32)


class CompiledKernel:
    """A built program, its entry point and a device buffer bound as argument 0.

    Argument 1 is an OpenCL `int` that callers mutate between launches with
    `set_scalar_param`. The kernel must be released before its `DeviceHandle`.
    """

    def __init__(self, *, device: DeviceHandle, program: Any, kernel: Any, buffer: Any, buffer_len: int) -> None:
        self._device = device
        self._program = program
        self._kernel = kernel
        self._buffer = buffer
        self.buffer_len = buffer_len
        self.scalar_param: int | None = None
        self._released = False
        device.register_kernel(self)

    @classmethod
    def build(
        cls,
        device: DeviceHandle,
        source_text: str,
        entry_name: str,
        buffer_len: int,
        *,
        options: Sequence[str] = (),
    ) -> "CompiledKernel":
        context = device.context
        cl_device = device.device

        try:
            program = cl.Program(context, source_text)
        except cl.Error as e:
            raise translate(e, CompileError, "clCreateProgramWithSource") from e
        try:
            program = program.build(options=list(options), devices=[cl_device])
        except cl.Error as e:
            raise translate(e, CompileError, "clBuildProgram") from e

        try:
            kernel = cl.Kernel(program, entry_name)
        except cl.Error as e:
            raise translate(e, CompileError, "clCreateKernel") from e

        if buffer_len <= 0:
            raise BufferAllocError("clCreateBuffer", CL_INVALID_BUFFER_SIZE, f"buffer_len must be > 0 (got {buffer_len})")
        try:
            buffer = cl.Buffer(context, cl.mem_flags.READ_WRITE, size=buffer_len)
        except cl.Error as e:
            raise translate(e, BufferAllocError, "clCreateBuffer") from e

        try:
            kernel.set_arg(DATA_ARG_INDEX, buffer)
        except cl.Error as e:
            raise translate(e, ArgBindError, "clSetKernelArg") from e

        return cls(device=device, program=program, kernel=kernel, buffer=buffer, buffer_len=buffer_len)

    @property
    def released(self) -> bool:
        return self._released

    def _require_live(self, operation: str) -> None:
        if self._released:
            raise HandleReleased(operation, UNKNOWN_STATUS, "kernel already released")

    @property
    def device(self) -> DeviceHandle:
        self._require_live("clGetKernelInfo")
        return self._device

    @property
    def kernel(self) -> Any:
        self._require_live("clGetKernelInfo")
        return self._kernel

    @property
    def buffer(self) -> Any:
        self._require_live("clGetMemObjectInfo")
        return self._buffer

    def set_scalar_param(self, value: int) -> None:
        """Bind `value` as the kernel's second argument (32-bit signed int)."""
        self._require_live("clSetKernelArg")
        if not _INT32.min <= value <= _INT32.max:
            raise ArgBindError("clSetKernelArg", CL_INVALID_ARG_VALUE, f"{value} does not fit a 32-bit int")
        try:
            self._kernel.set_arg(SCALAR_ARG_INDEX, np.int32(value))
        except cl.Error as e:
            raise translate(e, ArgBindError, "clSetKernelArg") from e
        self.scalar_param = int(value)

    def release(self) -> None:
        """Release buffer, kernel and program, in that order. The device is left untouched.

        The kernel is unusable and unregistered from its device afterwards, even
        when one of the releases fails; the first failure is raised.
        """
        if self._released:
            raise ReleaseFailed("clReleaseMemObject", UNKNOWN_STATUS, "kernel already released")

        try:
            release_in_order(
                [
                    (self._buffer, "clReleaseMemObject"),
                    (self._kernel, "clReleaseKernel"),
                    (self._program, "clReleaseProgram"),
                ]
            )
        finally:
            self._buffer = None
            self._kernel = None
            self._program = None
            self._released = True
            self._device.unregister_kernel(self)

    def __enter__(self) -> "CompiledKernel":
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
        try:
            self.release()
        except ClBenchError:
            pass
