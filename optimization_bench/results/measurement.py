from dataclasses import dataclass
from enum import Enum
from typing import Optional

from optimization_bench.errors import StatementError


class StatementRole(Enum):
    """
    Position of a statement inside a scenario run.
    """
    SETUP = "setup"
    BEFORE = "before"
    REMEDIATION = "remediation"
    AFTER = "after"


@dataclass(frozen=True)
class StatementOutcome:
    """What the database boundary reports back for a single statement."""
    row_count: Optional[int]
    duration_seconds: float
    error: Optional[StatementError] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class Measurement:
    """
    Timing and outcome of executing one statement of a scenario.

    Measurements are created once by the executor and never mutated afterwards.
    Errors are kept as (kind, message) so a measurement stays comparable and
    serializable after the driver exception is gone.
    """
    scenario_id: str
    role: StatementRole
    statement: str
    duration_seconds: float              # Wall-clock time spent in the database call
    row_count: Optional[int] = None      # None for statements without a result set
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    plan: Optional[str] = None           # EXPLAIN output when plan capture is on

    @classmethod
    def from_outcome(cls, scenario_id: str, role: StatementRole, statement: str,
                     outcome: StatementOutcome) -> "Measurement":
        error_kind = outcome.error.kind if outcome.error else None
        error_message = str(outcome.error) if outcome.error else None
        return cls(
            scenario_id=scenario_id,
            role=role,
            statement=statement,
            duration_seconds=outcome.duration_seconds,
            row_count=outcome.row_count,
            error_kind=error_kind,
            error_message=error_message,
        )

    @property
    def succeeded(self) -> bool:
        return self.error_kind is None

    @property
    def duration_ms(self) -> float:
        return self.duration_seconds * 1000
