from dataclasses import dataclass, field
from typing import Iterable, Optional, Tuple


@dataclass(frozen=True)
class Scenario:
    """
    One before/after optimization example.

    setup statements prepare schema and data, `before` is the unoptimized
    statement, remediation statements apply the fix (index, view, ...) and
    `after` is the statement timed once the fix is in place.
    """
    scenario_id: str
    before: str
    after: str
    setup: Tuple[str, ...] = field(default_factory=tuple)
    remediation: Tuple[str, ...] = field(default_factory=tuple)
    expected_min_speedup: Optional[float] = None
    description: str = ""
    explain: bool = False

    def __post_init__(self):
        if not self.scenario_id:
            raise ValueError("Scenario id must not be empty")
        if self.expected_min_speedup is not None and self.expected_min_speedup <= 0:
            raise ValueError(
                f"Expected minimum speedup of '{self.scenario_id}' must be positive, "
                f"got {self.expected_min_speedup}"
            )
        # Frozen dataclass: tuples have to be forced through object.__setattr__
        object.__setattr__(self, "setup", _as_statements(self.setup))
        object.__setattr__(self, "remediation", _as_statements(self.remediation))

    def statement_count(self) -> int:
        return len(self.setup) + len(self.remediation) + 2


def _as_statements(statements: Iterable[str]) -> Tuple[str, ...]:
    if isinstance(statements, str):
        return (statements,)
    return tuple(statements)
