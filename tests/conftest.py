from typing import Dict, List, Optional

import pytest

from optimization_bench.databases.base_handler import DatabaseHandler
from optimization_bench.errors import StatementError
from optimization_bench.results.measurement import StatementOutcome
from optimization_bench.scenarios.scenario import Scenario


class ScriptedHandler(DatabaseHandler):
    """Handler returning canned outcomes keyed by statement text."""

    def __init__(self, outcomes: Optional[Dict[str, StatementOutcome]] = None,
                 default_duration: float = 0.01):
        super().__init__(config={})
        self.outcomes = outcomes or {}
        self.default_duration = default_duration
        self.executed: List[str] = []
        self.plans: Dict[str, str] = {}
        self.initialized = False
        self.closed = False

    async def initialize_connection(self) -> None:
        self.initialized = True

    async def execute_statement(self, sql: str, timeout_seconds: Optional[float] = None) -> StatementOutcome:
        self.executed.append(sql)
        if sql in self.outcomes:
            return self.outcomes[sql]
        return StatementOutcome(row_count=None, duration_seconds=self.default_duration)

    async def explain(self, sql: str) -> str:
        if sql not in self.plans:
            raise StatementError(f"no plan for {sql}")
        return self.plans[sql]

    def close(self) -> None:
        self.closed = True


def ok(duration: float, rows: Optional[int] = 1) -> StatementOutcome:
    return StatementOutcome(row_count=rows, duration_seconds=duration)


def failed(error: StatementError, duration: float = 0.001) -> StatementOutcome:
    return StatementOutcome(row_count=None, duration_seconds=duration, error=error)


def make_scenario(scenario_id: str, **kwargs) -> Scenario:
    kwargs.setdefault("before", f"SELECT before FROM {scenario_id}")
    kwargs.setdefault("after", f"SELECT after FROM {scenario_id}")
    return Scenario(scenario_id=scenario_id, **kwargs)


@pytest.fixture
def handler() -> ScriptedHandler:
    return ScriptedHandler()
