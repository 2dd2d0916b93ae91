from typing import Optional


class HarnessError(Exception):
    """Base class for every error raised by the benchmarking harness."""


class DuplicateScenario(HarnessError):

    def __init__(self, scenario_id: str):
        super().__init__(f"Scenario '{scenario_id}' is already registered")
        self.scenario_id = scenario_id


class CatalogError(HarnessError):
    """The scenario catalog is malformed or missing required fields."""


class ScenarioAborted(HarnessError):
    """A scenario stopped before both timed statements could run."""

    stage = "Scenario"

    def __init__(self, scenario_id: str, statement_index: int, cause: Optional["StatementError"] = None):
        self.scenario_id = scenario_id
        self.statement_index = statement_index
        self.cause = cause
        super().__init__(self._describe())

    def _describe(self) -> str:
        reason = f": {self.cause}" if self.cause else ""
        return f"{self.stage} statement {self.statement_index + 1} of '{self.scenario_id}' failed{reason}"


class SetupFailed(ScenarioAborted):
    stage = "Setup"


class RemediationFailed(ScenarioAborted):
    stage = "Remediation"


class RunCancelled(HarnessError):

    def __init__(self, scenario_id: str):
        super().__init__(f"Run cancelled while executing scenario '{scenario_id}'")
        self.scenario_id = scenario_id


class StatementError(HarnessError):
    """A database error raised by a single statement (syntax, constraint, ...)."""

    kind = "statement_error"


class StatementTimeout(StatementError):
    kind = "statement_timeout"


class UnsupportedFeature(StatementError):
    kind = "unsupported_feature"


class ConnectionLost(StatementError):
    """The database connection is gone. Fatal to the whole run."""

    kind = "connection_lost"
