from __future__ import annotations

from typing import Any, Literal

import attrs

from .config import SweepRange

CheckStatus = Literal["pass", "fail"]


@attrs.define(frozen=True, slots=True)
class LaunchRecord:
    """Device-clock timestamps (ns) of one completed kernel launch."""

    worker_count: int
    start_ns: int
    end_ns: int

    @property
    def duration_ns(self) -> int:
        return self.end_ns - self.start_ns


@attrs.define(frozen=True, slots=True)
class SweepPoint:
    value: int
    duration_ns: int

    def to_tsv(self) -> str:
        return f"{self.value}\t{self.duration_ns}"

    def to_dict(self) -> dict[str, int]:
        return {"value": self.value, "duration_ns": self.duration_ns}


@attrs.define(frozen=True, slots=True)
class SweepResult:
    axis: str
    fixed_name: str
    fixed_value: int
    sweep_range: SweepRange
    points: tuple[SweepPoint, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "axis": self.axis,
            "fixed": {"name": self.fixed_name, "value": self.fixed_value},
            "range": self.sweep_range.to_dict(),
            "points": [p.to_dict() for p in self.points],
        }


@attrs.define(frozen=True, slots=True)
class PrerequisiteCheck:
    check_name: str
    status: CheckStatus
    details: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"check_name": self.check_name, "status": self.status, "details": self.details}
