"""Stage outcomes and the run report.

Pipeline stages never raise for the failure of a single tile,
trajectory or mask.  They return a `StageResult` holding whatever they
could produce together with one `Failure` per unit that was skipped.
The orchestrator feeds every result into the `RunReport`, whose
``error_flag`` is consulted once at the end of the run.
"""

from dataclasses import dataclass, field
from typing import Generic, List, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Failure:
    """A unit (tile id, trajectory or mask name) that could not be processed."""
    unit: str
    reason: str

    def __str__(self) -> str:
        return f"{self.unit}: {self.reason}"


@dataclass
class StageResult(Generic[T]):
    """Value produced by a stage plus the units it had to skip.

    ``value`` is None when the stage produced nothing usable.
    """
    value: Optional[T] = None
    failures: List[Failure] = field(default_factory=list)

    @classmethod
    def success(cls, value: T) -> "StageResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, unit: str, reason: str) -> "StageResult[T]":
        return cls(value=None, failures=[Failure(unit, reason)])

    @property
    def ok(self) -> bool:
        """True when a value was produced and nothing was skipped."""
        return self.value is not None and not self.failures

    @property
    def degraded(self) -> bool:
        return bool(self.failures)

    def add_failure(self, unit: str, reason: str) -> None:
        self.failures.append(Failure(unit, reason))


@dataclass
class RunReport:
    """Aggregate outcome of a batch run."""

    tiles_total: int = 0
    tiles_exported: List[str] = field(default_factory=list)
    tiles_failed: List[str] = field(default_factory=list)
    failures: List[Failure] = field(default_factory=list)
    error_flag: bool = False
    """Set by any degraded failure; never reset during a run."""

    def record(self, result: StageResult) -> StageResult:
        """Collect the failures of ``result`` and return it unchanged."""
        if result.failures:
            self.failures.extend(result.failures)
            self.error_flag = True
        return result

    def mark_exported(self, tile_id: str) -> None:
        self.tiles_exported.append(tile_id)

    def mark_failed(self, tile_id: str, reason: Optional[str] = None) -> None:
        """Register a tile that produced no ortho image."""
        if tile_id not in self.tiles_failed:
            self.tiles_failed.append(tile_id)
        if reason is not None:
            self.failures.append(Failure(tile_id, reason))
        self.error_flag = True

    def summary(self) -> str:
        return (f"{len(self.tiles_exported)}/{self.tiles_total} tiles exported, "
                f"{len(self.tiles_failed)} without output, {len(self.failures)} failures")
