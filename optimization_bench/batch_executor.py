import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

from optimization_bench.databases.base_handler import DatabaseHandler
from optimization_bench.databases.database_factory import DatabaseFactory
from optimization_bench.databases.types import DatabaseType
from optimization_bench.errors import RunCancelled
from optimization_bench.results.comparison_result import ComparisonResult, Verdict
from optimization_bench.scenario_executor import ScenarioExecutor
from optimization_bench.scenarios.registry import ScenarioRegistry
from optimization_bench.scenarios.scenario import Scenario

logger = logging.getLogger(__name__)


class BatchExecutor:
    """Coordinator for running every registered scenario and collecting the comparisons"""

    def __init__(self, database_type: DatabaseType, config: Optional[Dict[str, Any]] = None):
        self.database_type = database_type
        self.config = config or {}

        logger.info(f"Batch executor for {database_type.value}")

    async def run_all(self, registry: ScenarioRegistry,
                      handler: Optional[DatabaseHandler] = None,
                      cancel_event: Optional[asyncio.Event] = None,
                      parallel: bool = False,
                      ordered: bool = True) -> List[ComparisonResult]:
        """
        Run every scenario of the registry and return one result per scenario
        that was started, in registration order.

        Sequential runs share one handler, so later scenarios see the schema left
        by earlier ones. Parallel runs give each scenario an isolated handler and
        must be requested with ordered=False, since execution order is then lost.
        """
        if parallel and ordered:
            raise ValueError("Parallel execution cannot keep registry ordering; pass ordered=False to opt in")

        start_time = time.time()
        if parallel:
            results = await self._run_parallel(registry, cancel_event)
        else:
            results = await self._run_sequential(registry, handler, cancel_event)

        self._log_summary(results, len(registry), time.time() - start_time)
        return results

    async def _run_sequential(self, registry: ScenarioRegistry,
                              handler: Optional[DatabaseHandler],
                              cancel_event: Optional[asyncio.Event]) -> List[ComparisonResult]:
        owns_handler = handler is None
        if owns_handler:
            handler = DatabaseFactory.create_handler(self.database_type, self.config)
            await handler.initialize_connection()

        executor = ScenarioExecutor(self.config, cancel_event)
        try:
            if self.config.get("rollback", False):
                async with handler.transaction(rollback=True):
                    return await self._run_each(registry.list(), executor, handler)
            return await self._run_each(registry.list(), executor, handler)
        finally:
            if owns_handler:
                handler.close()

    @staticmethod
    async def _run_each(scenarios, executor: ScenarioExecutor,
                        handler: DatabaseHandler) -> List[ComparisonResult]:
        results: List[ComparisonResult] = []
        for scenario in scenarios:
            result = await executor.run(scenario, handler)
            results.append(result)
            if isinstance(result.failure, RunCancelled):
                logger.warning(f"Run cancelled, {len(results)} scenarios started")
                break
        return results

    async def _run_parallel(self, registry: ScenarioRegistry,
                            cancel_event: Optional[asyncio.Event]) -> List[ComparisonResult]:
        scenarios = list(registry.list())
        logger.info(f"Starting {len(scenarios)} scenarios on isolated connections")

        tasks = [
            asyncio.ensure_future(self._run_isolated(scenario, isolation_id, cancel_event))
            for isolation_id, scenario in enumerate(scenarios)
        ]
        try:
            # gather keeps input order, so results still follow registration order
            results = await asyncio.gather(*tasks)
        except BaseException as e:
            # A fatal error in one scenario stops the others; their handlers are
            # closed before the error propagates
            pending = [task for task in tasks if not task.done()]
            if pending:
                logger.error(f"Stopping {len(pending)} running scenarios after: {e!r}")
            for task in pending:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return [result for result in results if result is not None]

    async def _run_isolated(self, scenario: Scenario, isolation_id: int,
                            cancel_event: Optional[asyncio.Event]) -> Optional[ComparisonResult]:
        if cancel_event is not None and cancel_event.is_set():
            return None

        handler = DatabaseFactory.create_handler(self.database_type, self.config, isolation_id=isolation_id)
        async with handler:
            return await ScenarioExecutor(self.config, cancel_event).run(scenario, handler)

    @staticmethod
    def _log_summary(results: List[ComparisonResult], total: int, duration: float) -> None:
        counts = {verdict: 0 for verdict in Verdict}
        for result in results:
            counts[result.verdict] += 1

        logger.info(f"Batch completed in {duration:.2f} seconds:")
        logger.info(f"  - Scenarios run: {len(results)}/{total}")
        logger.info(f"  - Passed: {counts[Verdict.PASS]}, slow: {counts[Verdict.SLOW]}")
        if counts[Verdict.ERROR] or counts[Verdict.FAILED]:
            logger.warning(f"  - Statement errors: {counts[Verdict.ERROR]}, "
                           f"aborted scenarios: {counts[Verdict.FAILED]}")
