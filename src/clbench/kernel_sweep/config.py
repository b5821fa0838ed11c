from __future__ import annotations

from collections.abc import Iterator
from typing import Literal

import attrs

SweepAxis = Literal["inner_work", "parallelism"]
SWEEP_AXES: tuple[str, ...] = ("inner_work", "parallelism")

# Number of stream processors on the card the harness was first tuned on (RX 480).
N_STREAM_PROCESSORS = 2304

DEFAULT_PAYLOAD_TEXT = "Hello World!"
DEFAULT_ENTRY_NAME = "kerntest"

# Toy workload: each work item runs `n_iter` rounds of modular arithmetic on one
# printable character. Work items beyond DATA_LEN wrap around the buffer, so any
# worker count is safe. With n_iter == 0 the data is left unchanged.
DEFAULT_KERNEL_SOURCE = """\
#ifndef DATA_LEN
#define DATA_LEN 1
#endif

__kernel void kerntest(__global char* data, int n_iter) {
  size_t id = get_global_id(0);
  size_t idx = id % DATA_LEN;
  int tmp = data[idx] - 32;
  for (int i=0; i<n_iter; i++) {
    tmp = (2*tmp + id) % 95;
  }
  data[idx] = (char)(tmp + 32);
}
"""


def _positive(instance: object, attribute: attrs.Attribute, value: int) -> None:
    if value <= 0:
        raise ValueError(f"{attribute.name} must be > 0 (got {value})")


def _non_empty(instance: object, attribute: attrs.Attribute, value: str) -> None:
    if not value:
        raise ValueError(f"{attribute.name} must be non-empty")


@attrs.define(frozen=True, slots=True)
class SweepRange:
    """Inclusive range `start..end` stepping by `step`. Empty when start > end."""

    start: int
    end: int
    step: int = attrs.field(validator=_positive)

    def values(self) -> Iterator[int]:
        return iter(range(self.start, self.end + 1, self.step))

    def __len__(self) -> int:
        return len(range(self.start, self.end + 1, self.step))

    def to_dict(self) -> dict[str, int]:
        return {"start": self.start, "end": self.end, "step": self.step}

    @staticmethod
    def from_axis_value(v: str) -> "SweepRange":
        parts = v.split(":")
        if len(parts) != 3:
            raise ValueError(f"Invalid sweep range: {v!r} (expected start:end:step)")
        start_s, end_s, step_s = parts
        return SweepRange(start=int(start_s), end=int(end_s), step=int(step_s))


DEFAULT_INNER_RANGE = SweepRange(start=1_000_000, end=10_000_000, step=1_000_000)
DEFAULT_PARALLELISM_RANGE = SweepRange(start=256, end=4 * N_STREAM_PROCESSORS, step=256)


@attrs.define(frozen=True, slots=True)
class BenchConfig:
    """Sweep bounds and fixed values for one benchmark run."""

    buffer_len: int = attrs.field(default=N_STREAM_PROCESSORS, validator=_positive)
    default_workers: int = attrs.field(default=N_STREAM_PROCESSORS, validator=_positive)
    default_iterations: int = 1_000_000
    inner_range: SweepRange = DEFAULT_INNER_RANGE
    parallelism_range: SweepRange = DEFAULT_PARALLELISM_RANGE
    payload_text: str = attrs.field(default=DEFAULT_PAYLOAD_TEXT, validator=_non_empty)
    kernel_source: str = DEFAULT_KERNEL_SOURCE
    entry_name: str = DEFAULT_ENTRY_NAME

    def range_for(self, axis: str) -> SweepRange:
        if axis == "inner_work":
            return self.inner_range
        if axis == "parallelism":
            return self.parallelism_range
        raise KeyError(f"Unknown sweep axis={axis!r}. Known: {list(SWEEP_AXES)}")

    def build_options(self) -> tuple[str, ...]:
        return (f"-DDATA_LEN={self.buffer_len}",)

    def to_dict(self) -> dict[str, object]:
        return {
            "buffer_len": self.buffer_len,
            "default_workers": self.default_workers,
            "default_iterations": self.default_iterations,
            "inner_range": self.inner_range.to_dict(),
            "parallelism_range": self.parallelism_range.to_dict(),
            "payload_text": self.payload_text,
            "entry_name": self.entry_name,
        }


def fill_payload(text: str, length: int) -> bytes:
    """Repeat `text` cyclically until it is exactly `length` bytes long."""
    raw = text.encode()
    if not raw:
        raise ValueError("payload text must be non-empty")
    if length < 0:
        raise ValueError(f"length must be >= 0 (got {length})")
    return bytes(raw[i % len(raw)] for i in range(length))
