from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import numpy as np
import pytest

from clbench.kernel_sweep import device, kernel, prereqs, runner


class FakeClError(Exception):
    def __init__(self, routine: str, code: int, what: str = "") -> None:
        super().__init__(f"{routine} failed: {what or code}")
        self.routine = routine
        self.code = code


class _Released:
    kind = "object"

    def __init__(self, fake: "FakeOpenCL") -> None:
        self.fake = fake
        fake.log.append(f"create:{self.kind}")

    def release(self) -> None:
        self.fake.maybe_fail(f"release:{self.kind}")
        self.fake.log.append(f"release:{self.kind}")


class FakeContext(_Released):
    kind = "context"


class FakeQueue(_Released):
    kind = "queue"

    def __init__(self, fake: "FakeOpenCL", properties: int) -> None:
        super().__init__(fake)
        self.properties = properties

    def finish(self) -> None:
        self.fake.maybe_fail("finish")
        self.fake.log.append("finish:queue")


class FakeProgram(_Released):
    kind = "program"

    def __init__(self, fake: "FakeOpenCL", source: str) -> None:
        super().__init__(fake)
        self.source = source
        self.options: list[str] | None = None

    def build(self, options: list[str] | None = None, devices: list[Any] | None = None) -> "FakeProgram":
        self.fake.maybe_fail("build", what="<kernel>:3:5: error: use of undeclared identifier 'oops'")
        self.options = options
        return self


class FakeKernel(_Released):
    kind = "kernel"

    def __init__(self, fake: "FakeOpenCL", name: str) -> None:
        super().__init__(fake)
        self.name = name
        self.args: dict[int, Any] = {}
        self.set_arg_calls: list[int] = []

    def set_arg(self, index: int, value: Any) -> None:
        self.fake.maybe_fail(f"set_arg:{index}")
        self.set_arg_calls.append(index)
        self.args[index] = value


class FakeBuffer(_Released):
    kind = "buffer"

    def __init__(self, fake: "FakeOpenCL", size: int) -> None:
        super().__init__(fake)
        self.data = bytearray(size)


class FakeEvent:
    def __init__(self, fake: "FakeOpenCL", start: int, end: int) -> None:
        self.fake = fake
        self._start = start
        self._end = end

    def wait(self) -> None:
        self.fake.maybe_fail("wait")

    @property
    def profile(self) -> SimpleNamespace:
        self.fake.maybe_fail("profile")
        if self.fake.reverse_timestamps:
            return SimpleNamespace(start=self._end, end=self._start)
        return SimpleNamespace(start=self._start, end=self._end)


class FakeDevice:
    name = "Fake GPU "
    version = "OpenCL 3.0 fake"
    max_compute_units = 36


class FakePlatform:
    name = "Fake Platform"
    vendor = "Fake Vendor"
    version = "OpenCL 3.0"

    def __init__(self, fake: "FakeOpenCL") -> None:
        self.fake = fake
        self.devices: list[FakeDevice] = [FakeDevice()]

    def get_devices(self, device_type: int | None = None) -> list[FakeDevice]:
        self.fake.maybe_fail("get_devices")
        return list(self.devices)


class FakeOpenCL:
    """In-memory stand-in for the parts of pyopencl the benchmark uses.

    Kernel launches take `100 + 2 * n_iter + worker_count` ns on a fake device
    clock. `fail` maps an operation key to the status code it should raise.
    """

    Error = FakeClError
    device_type = SimpleNamespace(ALL=0xFFFFFFFF)
    context_properties = SimpleNamespace(PLATFORM=0x1084)
    command_queue_properties = SimpleNamespace(PROFILING_ENABLE=2)
    mem_flags = SimpleNamespace(READ_WRITE=1)

    def __init__(self) -> None:
        self.log: list[str] = []
        self.fail: dict[str, int] = {}
        self.platforms: list[FakePlatform] = [FakePlatform(self)]
        self.clock = 1_000
        self.reverse_timestamps = False
        self.launches: list[dict[str, Any]] = []
        self.queues: list[FakeQueue] = []
        self.programs: list[FakeProgram] = []

    def maybe_fail(self, op: str, what: str = "") -> None:
        if op in self.fail:
            raise FakeClError(op, self.fail[op], what)

    def _tick(self, duration: int) -> FakeEvent:
        start = self.clock
        self.clock = start + duration + 10
        return FakeEvent(self, start, start + duration)

    def get_platforms(self) -> list[FakePlatform]:
        self.maybe_fail("get_platforms")
        return list(self.platforms)

    def Context(self, devices: list[Any], properties: list[Any]) -> FakeContext:
        self.maybe_fail("Context")
        return FakeContext(self)

    def CommandQueue(self, context: Any, device: Any, properties: int = 0) -> FakeQueue:
        self.maybe_fail("CommandQueue")
        q = FakeQueue(self, properties)
        self.queues.append(q)
        return q

    def Program(self, context: Any, source: str) -> FakeProgram:
        self.maybe_fail("Program")
        p = FakeProgram(self, source)
        self.programs.append(p)
        return p

    def Kernel(self, program: FakeProgram, name: str) -> FakeKernel:
        if f"void {name}(" not in program.source:
            raise FakeClError("clCreateKernel", -46, "INVALID_KERNEL_NAME")
        return FakeKernel(self, name)

    def Buffer(self, context: Any, flags: int, size: int = 0) -> FakeBuffer:
        self.maybe_fail("Buffer")
        return FakeBuffer(self, size)

    def enqueue_copy(
        self, queue: Any, dest: Any, src: Any, is_blocking: bool = True, wait_for: list[Any] | None = None
    ) -> FakeEvent:
        if isinstance(dest, FakeBuffer):
            self.maybe_fail("enqueue_copy:write")
            raw = np.asarray(src, dtype=np.uint8).tobytes()
            dest.data[: len(raw)] = raw
            self.log.append("write:buffer")
        else:
            self.maybe_fail("enqueue_copy:read")
            dest[:] = np.frombuffer(bytes(src.data[: len(dest)]), dtype=np.uint8)
            self.log.append("read:buffer")
        return self._tick(len(dest) if not isinstance(dest, FakeBuffer) else len(src))

    def enqueue_nd_range_kernel(
        self,
        queue: Any,
        kern: FakeKernel,
        global_size: tuple[int, ...],
        local_size: Any,
        wait_for: list[Any] | None = None,
    ) -> FakeEvent:
        self.maybe_fail("enqueue_nd_range_kernel")
        n_iter = int(kern.args[1])
        workers = global_size[0]
        self.launches.append(
            {"workers": workers, "n_iter": n_iter, "local_size": local_size, "wait_for": list(wait_for or [])}
        )
        self.log.append("launch:kernel")
        return self._tick(100 + 2 * n_iter + workers)


@pytest.fixture
def fake_cl(monkeypatch: pytest.MonkeyPatch) -> FakeOpenCL:
    fake = FakeOpenCL()
    for mod in (device, kernel, runner, prereqs):
        monkeypatch.setattr(mod, "cl", fake)
    return fake
