import asyncio
import logging
import os
import time
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import duckdb

from optimization_bench.databases.base_handler import DatabaseHandler
from optimization_bench.errors import (
    ConnectionLost,
    StatementError,
    StatementTimeout,
    UnsupportedFeature,
)
from optimization_bench.results.measurement import StatementOutcome

logger = logging.getLogger(__name__)

IN_MEMORY = ":memory:"


class DuckDBHandler(DatabaseHandler):
    def __init__(self, isolation_id: Optional[int] = None, config: Optional[Dict[str, Any]] = None):
        super().__init__(isolation_id=isolation_id, config=config)

        self.connection: Optional[duckdb.DuckDBPyConnection] = None
        self.db_path: Optional[str] = None

    async def initialize_connection(self) -> None:
        """Open the DuckDB connection and apply the configured settings."""

        self.db_path = self._get_database_path()
        if self.db_path != IN_MEMORY:
            os.makedirs(os.path.dirname(os.path.abspath(self.db_path)), exist_ok=True)

        self.connection = duckdb.connect(database=self.db_path)

        duckdb_settings = self.config.get("duckdb_settings") or {}
        for setting, value in duckdb_settings.items():
            self.connection.sql(f"SET {setting} = '{value}'")

        logger.info(f"DuckDB connection opened on {self.db_path}")

    def close(self):
        if self.connection is not None:
            logger.info(f"Closing DuckDB connection on {self.db_path}")
            self.connection.close()
            self.connection = None

    async def execute_statement(self, sql: str, timeout_seconds: Optional[float] = None) -> StatementOutcome:
        if self.connection is None:
            return self._failed(0.0, ConnectionLost("DuckDB connection is not open"))

        timeout = self._resolve_timeout(timeout_seconds)
        start_time = time.perf_counter()
        task = asyncio.ensure_future(asyncio.to_thread(self._execute_blocking, sql))

        try:
            done, _ = await asyncio.wait({task}, timeout=timeout)
        except asyncio.CancelledError:
            self.connection.interrupt()
            await self._drain_worker(task)
            raise

        if not done:
            # The statement keeps running in its worker thread until DuckDB
            # notices the interrupt, so wait for it before reusing the connection
            logger.warning(f"Statement exceeded {timeout}s, interrupting: {sql[:80]}")
            self.connection.interrupt()
            await self._drain_worker(task)
            duration = time.perf_counter() - start_time
            return self._failed(duration, StatementTimeout(f"Statement exceeded timeout of {timeout}s"))

        try:
            row_count, duration = task.result()
        except duckdb.Error as e:
            duration = time.perf_counter() - start_time
            logger.error(f"DuckDB statement failed after {duration:.3f}s: {e}")
            logger.error(f"Failed SQL (first 200 chars): {sql[:200]}")
            return self._failed(duration, self._translate_error(e))

        logger.debug(f"Statement executed in {duration * 1000:.2f}ms, rows={row_count}")
        return StatementOutcome(row_count=row_count, duration_seconds=duration)

    def _execute_blocking(self, sql: str) -> Tuple[Optional[int], float]:
        start_execution_time = time.perf_counter()
        result = self.connection.execute(sql)
        row_count = None
        if result.description:
            row_count = len(result.fetchall())
        end_execution_time = time.perf_counter()
        return row_count, end_execution_time - start_execution_time

    async def explain(self, sql: str) -> str:
        if self.connection is None:
            raise ConnectionLost("DuckDB connection is not open")
        try:
            rows = await asyncio.to_thread(lambda: self.connection.execute(f"EXPLAIN {sql}").fetchall())
        except duckdb.Error as e:
            raise self._translate_error(e) from e
        return "\n".join(str(row[-1]) for row in rows)

    @staticmethod
    def _translate_error(error: duckdb.Error) -> StatementError:
        if isinstance(error, duckdb.InterruptException):
            return StatementTimeout(str(error))
        if isinstance(error, duckdb.NotImplementedException):
            return UnsupportedFeature(str(error))
        if isinstance(error, duckdb.ConnectionException):
            return ConnectionLost(str(error))
        return StatementError(str(error))

    def _get_database_path(self) -> str:
        """
        Get the database path for this handler.
        Handlers with an isolation id get their own file derived from base_database_path.
        """

        single_database_path = self.config.get("database_path", "")
        base_database_path = self.config.get("base_database_path", "")

        if self.isolation_id is not None and base_database_path:
            path = Path(base_database_path)
            isolated_path = path.parent.joinpath(f"{path.stem}_{self.isolation_id}{path.suffix}")
            return str(isolated_path)
        elif single_database_path:
            if self.isolation_id is not None and single_database_path != IN_MEMORY:
                raise ValueError("Isolated handlers need base_database_path, not a shared database_path")
            return single_database_path
        elif base_database_path:
            raise ValueError("Isolation id is required when only base_database_path is configured")
        else:
            raise ValueError("Neither database_path nor base_database_path configured")
