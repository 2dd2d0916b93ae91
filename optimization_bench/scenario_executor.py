import asyncio
import dataclasses
import logging
from typing import Any, Dict, Optional, Tuple, Type

from optimization_bench.databases.base_handler import DatabaseHandler
from optimization_bench.errors import (
    ConnectionLost,
    RemediationFailed,
    RunCancelled,
    ScenarioAborted,
    SetupFailed,
    StatementError,
)
from optimization_bench.results.comparison_result import ComparisonResult
from optimization_bench.results.measurement import Measurement, StatementRole
from optimization_bench.scenarios.scenario import Scenario

logger = logging.getLogger(__name__)


class ScenarioExecutor:
    """Runs a single before/after scenario against one database handler."""

    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 cancel_event: Optional[asyncio.Event] = None):
        self.config = config or {}
        self.statement_timeout = self.config.get("statement_timeout_seconds")
        self.explain_all = bool(self.config.get("explain", False))
        self.cancel_event = cancel_event

    async def run(self, scenario: Scenario, handler: DatabaseHandler) -> ComparisonResult:
        """
        Execute setup, the timed "before" statement, remediation and the timed
        "after" statement, in that order.

        Setup/remediation failures and cancellation end up in a failed
        ComparisonResult. ConnectionLost is raised to the caller.
        """
        logger.info(f"Running scenario {scenario.scenario_id}")
        before: Optional[Measurement] = None
        after: Optional[Measurement] = None

        try:
            await self._run_group(scenario, handler, StatementRole.SETUP, SetupFailed)
            before = await self._run_timed(scenario, handler, StatementRole.BEFORE, scenario.before)
            await self._run_group(scenario, handler, StatementRole.REMEDIATION, RemediationFailed)
            after = await self._run_timed(scenario, handler, StatementRole.AFTER, scenario.after)
        except (ScenarioAborted, RunCancelled) as e:
            logger.error(f"Scenario {scenario.scenario_id} aborted: {e}")
            return self._result(scenario, before, after, failure=e)

        result = self._result(scenario, before, after)
        speedup = f"{result.speedup:.2f}x" if result.speedup is not None else "n/a"
        logger.info(f"Scenario {scenario.scenario_id} finished: {result.verdict.value} (speedup {speedup})")
        return result

    async def _run_group(self, scenario: Scenario, handler: DatabaseHandler, role: StatementRole,
                         abort_error: Type[ScenarioAborted]) -> None:
        statements = scenario.setup if role is StatementRole.SETUP else scenario.remediation
        for index, statement in enumerate(statements):
            _, error = await self._execute(scenario, handler, role, statement)
            if error is not None:
                raise abort_error(scenario.scenario_id, index, error)

    async def _run_timed(self, scenario: Scenario, handler: DatabaseHandler,
                         role: StatementRole, statement: str) -> Measurement:
        measurement, _ = await self._execute(scenario, handler, role, statement)
        if measurement.succeeded and (scenario.explain or self.explain_all):
            plan = await self._capture_plan(handler, statement)
            measurement = dataclasses.replace(measurement, plan=plan)
        logger.info(f"[{scenario.scenario_id}] {role.value}: {measurement.duration_ms:.2f}ms"
                    + (f" ({measurement.error_kind})" if not measurement.succeeded else ""))
        return measurement

    async def _execute(self, scenario: Scenario, handler: DatabaseHandler,
                       role: StatementRole, statement: str) -> Tuple[Measurement, Optional[StatementError]]:
        # Cancellation is only honoured between statements, never mid-statement
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise RunCancelled(scenario.scenario_id)

        logger.debug(f"[{scenario.scenario_id}] {role.value}: "
                     f"{statement[:50]}{'...' if len(statement) > 50 else ''}")
        outcome = await handler.execute_guarded(statement, self.statement_timeout)
        if isinstance(outcome.error, ConnectionLost):
            logger.error(f"Connection lost during scenario {scenario.scenario_id}: {outcome.error}")
            raise outcome.error

        return Measurement.from_outcome(scenario.scenario_id, role, statement, outcome), outcome.error

    async def _capture_plan(self, handler: DatabaseHandler, statement: str) -> Optional[str]:
        try:
            return await handler.explain_guarded(statement)
        except ConnectionLost:
            raise
        except StatementError as e:
            logger.warning(f"Could not capture plan: {e}")
            return None

    @staticmethod
    def _result(scenario: Scenario, before: Optional[Measurement], after: Optional[Measurement],
                failure=None) -> ComparisonResult:
        return ComparisonResult(
            scenario_id=scenario.scenario_id,
            before=before,
            after=after,
            expected_min_speedup=scenario.expected_min_speedup,
            failure=failure,
            description=scenario.description,
        )
