from dataclasses import dataclass
from enum import Enum
from typing import Optional

from optimization_bench.errors import HarnessError
from optimization_bench.results.measurement import Measurement


class Verdict(Enum):
    PASS = "PASS"
    SLOW = "SLOW"        # Both statements ran, speedup below the expected minimum
    ERROR = "ERROR"      # A timed statement returned a database error
    FAILED = "FAILED"    # Setup/remediation failed or the run was cancelled


@dataclass(frozen=True)
class ComparisonResult:
    """Speedup verdict for one scenario run, derived from its before/after measurements."""
    scenario_id: str
    before: Optional[Measurement] = None
    after: Optional[Measurement] = None
    expected_min_speedup: Optional[float] = None
    failure: Optional[HarnessError] = None
    description: str = ""

    def __post_init__(self):
        for measurement in (self.before, self.after):
            if measurement is not None and measurement.scenario_id != self.scenario_id:
                raise ValueError(
                    f"Measurement of '{measurement.scenario_id}' cannot be part of "
                    f"the result for '{self.scenario_id}'"
                )

    @property
    def speedup(self) -> Optional[float]:
        """before / after duration, or None whenever the ratio is undefined."""
        if self.failure is not None or self.before is None or self.after is None:
            return None
        if not self.before.succeeded or not self.after.succeeded:
            return None
        if self.after.duration_seconds <= 0:
            return None
        return self.before.duration_seconds / self.after.duration_seconds

    @property
    def completed(self) -> bool:
        return (
            self.failure is None
            and self.before is not None and self.before.succeeded
            and self.after is not None and self.after.succeeded
        )

    @property
    def passed(self) -> bool:
        if not self.completed:
            return False
        if self.expected_min_speedup is None:
            return True
        speedup = self.speedup
        return speedup is not None and speedup >= self.expected_min_speedup

    @property
    def verdict(self) -> Verdict:
        if self.failure is not None:
            return Verdict.FAILED
        if not self.completed:
            return Verdict.ERROR
        return Verdict.PASS if self.passed else Verdict.SLOW

    @property
    def error_summary(self) -> Optional[str]:
        if self.failure is not None:
            return str(self.failure)
        for measurement in (self.before, self.after):
            if measurement is not None and not measurement.succeeded:
                return f"{measurement.role.value}: {measurement.error_kind}: {measurement.error_message}"
        return None
