import asyncio
import logging
import time
from typing import Any, Dict, Optional, Tuple

import psycopg
import psycopg.rows

from optimization_bench.databases.base_handler import DatabaseHandler
from optimization_bench.errors import (
    ConnectionLost,
    StatementError,
    StatementTimeout,
    UnsupportedFeature,
)
from optimization_bench.results.measurement import StatementOutcome

logger = logging.getLogger(__name__)

_CONNECTION_ERRORS = (
    psycopg.errors.ConnectionException,
    psycopg.errors.AdminShutdown,
    psycopg.errors.CrashShutdown,
)


class PostgresHandler(DatabaseHandler):
    """
    Runs scenario statements on PostgreSQL through psycopg 3.

    The connection is in autocommit mode, so every statement is persisted as soon
    as it runs unless the caller opened a transaction scope. Isolated handlers
    (parallel mode) work inside their own schema.
    """

    supports_savepoints = True

    def __init__(self, isolation_id: Optional[int] = None, config: Optional[Dict[str, Any]] = None):
        super().__init__(isolation_id=isolation_id, config=config)
        self.connection: Optional[psycopg.Connection] = None
        self.schema: Optional[str] = None

    async def initialize_connection(self) -> None:
        dsn = self.config.get("dsn")
        if not dsn:
            raise ValueError("PostgreSQL configuration needs a 'dsn'")

        try:
            self.connection = await asyncio.to_thread(
                psycopg.connect,
                dsn,
                autocommit=True,
                application_name=self.config.get("application_name", "optimization_bench"),
                row_factory=psycopg.rows.tuple_row,
            )
        except psycopg.OperationalError as e:
            raise ConnectionLost(f"Could not connect to PostgreSQL: {e}") from e

        if self.isolation_id is not None:
            prefix = self.config.get("isolation_schema_prefix", "optbench")
            self.schema = f"{prefix}_{self.isolation_id}"
            for statement in (f"CREATE SCHEMA IF NOT EXISTS {self.schema}",
                              f"SET search_path TO {self.schema}, public"):
                outcome = await self.execute_statement(statement)
                if outcome.error is not None:
                    raise outcome.error
        logger.info(f"PostgreSQL connection opened (schema={self.schema or 'default'})")

    def close(self):
        if self.connection is not None:
            logger.info("Closing PostgreSQL connection")
            self.connection.close()
            self.connection = None

    async def execute_statement(self, sql: str, timeout_seconds: Optional[float] = None) -> StatementOutcome:
        if self.connection is None or self.connection.closed:
            return self._failed(0.0, ConnectionLost("PostgreSQL connection is not open"))

        timeout = self._resolve_timeout(timeout_seconds)
        start_time = time.perf_counter()
        task = asyncio.ensure_future(asyncio.to_thread(self._execute_blocking, sql, timeout))
        try:
            row_count, duration = await asyncio.shield(task)
        except asyncio.CancelledError:
            # Stop the server-side statement and let the worker finish before
            # the connection can be closed
            self.connection.cancel()
            await self._drain_worker(task)
            raise
        except psycopg.Error as e:
            duration = time.perf_counter() - start_time
            logger.error(f"PostgreSQL statement failed after {duration:.3f}s: {e}")
            logger.error(f"Failed SQL (first 200 chars): {sql[:200]}")
            return self._failed(duration, self._translate_error(e))

        logger.debug(f"Statement executed in {duration * 1000:.2f}ms, rows={row_count}")
        return StatementOutcome(row_count=row_count, duration_seconds=duration)

    def _execute_blocking(self, sql: str, timeout: Optional[float]) -> Tuple[Optional[int], float]:
        with self.connection.cursor() as cursor:
            # 0 disables the server-side limit
            timeout_ms = int(timeout * 1000) if timeout else 0
            cursor.execute(f"SET statement_timeout = {timeout_ms}")

            start_execution_time = time.perf_counter()
            cursor.execute(sql)
            if cursor.description is not None:
                row_count = len(cursor.fetchall())
            else:
                row_count = cursor.rowcount if cursor.rowcount >= 0 else None
            end_execution_time = time.perf_counter()
        return row_count, end_execution_time - start_execution_time

    async def explain(self, sql: str) -> str:
        if self.connection is None or self.connection.closed:
            raise ConnectionLost("PostgreSQL connection is not open")

        def _explain():
            with self.connection.cursor() as cursor:
                cursor.execute(f"EXPLAIN {sql}")
                return cursor.fetchall()

        try:
            rows = await asyncio.to_thread(_explain)
        except psycopg.Error as e:
            raise self._translate_error(e) from e
        return "\n".join(str(row[0]) for row in rows)

    def _translate_error(self, error: psycopg.Error) -> StatementError:
        if isinstance(error, psycopg.errors.QueryCanceled):
            return StatementTimeout(str(error))
        if isinstance(error, psycopg.errors.FeatureNotSupported):
            return UnsupportedFeature(str(error))
        if isinstance(error, _CONNECTION_ERRORS) or (self.connection is not None and self.connection.broken):
            return ConnectionLost(str(error))
        return StatementError(str(error))

