import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from optimization_bench.errors import ConnectionLost, StatementError
from optimization_bench.results.measurement import StatementOutcome

logger = logging.getLogger(__name__)


class DatabaseHandler(ABC):
    """
    The harness' only view of a database: run a statement, get back
    (row count, duration, error).

    Driver exceptions never leave `execute_statement`; they are translated into
    the StatementError family and returned inside the outcome.
    """

    # Engines that abort the whole transaction on a failed statement need a
    # savepoint around every statement run inside a transaction scope
    supports_savepoints = False
    savepoint_name = "optbench_statement"

    def __init__(self, isolation_id: Optional[int] = None, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.isolation_id = isolation_id
        self.in_transaction = False

    @abstractmethod
    async def initialize_connection(self) -> None:
        """Open the connection this handler executes statements on."""

    @abstractmethod
    async def execute_statement(self, sql: str, timeout_seconds: Optional[float] = None) -> StatementOutcome:
        pass

    @abstractmethod
    async def explain(self, sql: str) -> str:
        """Return the execution plan of `sql` as text. May raise StatementError."""

    @abstractmethod
    def close(self) -> None:
        pass

    async def __aenter__(self) -> "DatabaseHandler":
        await self.initialize_connection()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @asynccontextmanager
    async def transaction(self, rollback: bool = True) -> AsyncIterator["DatabaseHandler"]:
        """
        Scope a whole run in one transaction.

        With rollback=True every schema and data change made inside the scope is
        discarded on exit, otherwise it is committed unless the block raised.
        """
        await self._run_control_statement("BEGIN")
        self.in_transaction = True
        try:
            yield self
        except BaseException:
            self.in_transaction = False
            await self._run_control_statement("ROLLBACK")
            raise
        self.in_transaction = False
        if rollback:
            logger.info("Rolling back benchmark transaction")
            await self._run_control_statement("ROLLBACK")
        else:
            await self._run_control_statement("COMMIT")

    async def execute_guarded(self, sql: str, timeout_seconds: Optional[float] = None) -> StatementOutcome:
        """
        execute_statement that leaves an open transaction usable when the
        statement fails, by wrapping it in a savepoint.
        """
        if not self._uses_savepoints():
            return await self.execute_statement(sql, timeout_seconds)

        await self._run_control_statement(f"SAVEPOINT {self.savepoint_name}")
        outcome = await self.execute_statement(sql, timeout_seconds)
        if outcome.error is None:
            await self._run_control_statement(f"RELEASE SAVEPOINT {self.savepoint_name}")
        elif not isinstance(outcome.error, ConnectionLost):
            await self._rollback_to_savepoint()
        return outcome

    async def explain_guarded(self, sql: str) -> str:
        if not self._uses_savepoints():
            return await self.explain(sql)

        await self._run_control_statement(f"SAVEPOINT {self.savepoint_name}")
        try:
            plan = await self.explain(sql)
        except ConnectionLost:
            raise
        except StatementError:
            await self._rollback_to_savepoint()
            raise
        await self._run_control_statement(f"RELEASE SAVEPOINT {self.savepoint_name}")
        return plan

    def _uses_savepoints(self) -> bool:
        return self.in_transaction and self.supports_savepoints

    async def _rollback_to_savepoint(self) -> None:
        logger.debug(f"Rolling back to savepoint {self.savepoint_name}")
        await self._run_control_statement(f"ROLLBACK TO SAVEPOINT {self.savepoint_name}")
        await self._run_control_statement(f"RELEASE SAVEPOINT {self.savepoint_name}")

    async def _run_control_statement(self, sql: str) -> None:
        outcome = await self.execute_statement(sql)
        if outcome.error is not None:
            raise outcome.error

    def _resolve_timeout(self, timeout_seconds: Optional[float]) -> Optional[float]:
        if timeout_seconds is not None:
            return timeout_seconds if timeout_seconds > 0 else None
        configured = self.config.get("statement_timeout_seconds")
        return float(configured) if configured else None

    @staticmethod
    async def _drain_worker(task: "asyncio.Future") -> None:
        """Wait until an abandoned driver call has returned its worker thread."""
        await asyncio.wait({task})
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Abandoned statement ended with: {task.exception()}")

    @staticmethod
    def _failed(duration_seconds: float, error: StatementError) -> StatementOutcome:
        return StatementOutcome(row_count=None, duration_seconds=duration_seconds, error=error)
