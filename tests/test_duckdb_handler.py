import types

import duckdb
import psycopg
import pytest

from optimization_bench.databases.database_factory import DatabaseFactory
from optimization_bench.databases.duckdb import DuckDBHandler
from optimization_bench.databases.postgres import PostgresHandler
from optimization_bench.databases.types import DatabaseType
from optimization_bench.errors import (
    ConnectionLost,
    StatementError,
    StatementTimeout,
    UnsupportedFeature,
)


class TestDuckDBHandler:

    @pytest.mark.asyncio
    async def test_execute_reports_rows_and_duration(self):
        async with DuckDBHandler(config={"database_path": ":memory:"}) as handler:
            create = await handler.execute_statement("CREATE TABLE t AS SELECT i FROM range(0, 50) t(i)")
            select = await handler.execute_statement("SELECT * FROM t WHERE i < 10")

        assert create.succeeded
        assert select.succeeded
        assert select.row_count == 10
        assert select.duration_seconds >= 0

    @pytest.mark.asyncio
    async def test_database_error_is_returned(self):
        async with DuckDBHandler(config={"database_path": ":memory:"}) as handler:
            outcome = await handler.execute_statement("SELEC broken")

        assert not outcome.succeeded
        assert isinstance(outcome.error, StatementError)
        assert outcome.row_count is None

    @pytest.mark.asyncio
    async def test_closed_connection_is_connection_lost(self):
        handler = DuckDBHandler(config={"database_path": ":memory:"})
        await handler.initialize_connection()
        handler.close()

        outcome = await handler.execute_statement("SELECT 1")

        assert isinstance(outcome.error, ConnectionLost)

    @pytest.mark.asyncio
    async def test_transaction_rolls_back(self):
        async with DuckDBHandler(config={"database_path": ":memory:"}) as handler:
            await handler.execute_statement("CREATE TABLE kept (x INT)")
            async with handler.transaction(rollback=True):
                await handler.execute_statement("CREATE TABLE discarded (x INT)")
                await handler.execute_statement("INSERT INTO kept VALUES (1)")

            kept = await handler.execute_statement("SELECT * FROM kept")
            discarded = await handler.execute_statement("SELECT * FROM discarded")

        assert kept.row_count == 0
        assert isinstance(discarded.error, StatementError)

    @pytest.mark.asyncio
    async def test_transaction_commits(self):
        async with DuckDBHandler(config={"database_path": ":memory:"}) as handler:
            async with handler.transaction(rollback=False):
                await handler.execute_statement("CREATE TABLE kept (x INT)")
            outcome = await handler.execute_statement("SELECT * FROM kept")

        assert outcome.succeeded

    @pytest.mark.asyncio
    async def test_explain_returns_plan_text(self):
        async with DuckDBHandler(config={"database_path": ":memory:"}) as handler:
            await handler.execute_statement("CREATE TABLE t (x INT)")
            plan = await handler.explain("SELECT * FROM t WHERE x = 1")

        assert isinstance(plan, str)
        assert plan.strip()

    @pytest.mark.asyncio
    async def test_explain_error_is_translated(self):
        async with DuckDBHandler(config={"database_path": ":memory:"}) as handler:
            with pytest.raises(StatementError):
                await handler.explain("SELECT * FROM missing_table")

    @pytest.mark.asyncio
    async def test_timeout_interrupts_and_connection_stays_usable(self):
        async with DuckDBHandler(config={"database_path": ":memory:"}) as handler:
            slow = await handler.execute_statement(
                "SELECT COUNT(*) FROM range(0, 3000000000) a(i) WHERE i % 7 = 3", timeout_seconds=0.2)
            fast = await handler.execute_statement("SELECT 42")

        assert isinstance(slow.error, StatementTimeout)
        assert slow.row_count is None
        assert fast.succeeded
        assert fast.row_count == 1

    @pytest.mark.parametrize("error, expected", [
        (duckdb.InterruptException("query interrupted"), StatementTimeout),
        (duckdb.NotImplementedException("not implemented"), UnsupportedFeature),
        (duckdb.ConnectionException("connection already closed"), ConnectionLost),
        (duckdb.ParserException("syntax error"), StatementError),
    ])
    def test_translate_error(self, error, expected):
        translated = DuckDBHandler._translate_error(error)

        assert type(translated) is expected
        assert str(error) in str(translated)

    def test_isolated_database_path(self, tmp_path):
        handler = DuckDBHandler(isolation_id=3, config={"base_database_path": str(tmp_path / "bench.duckdb")})
        assert handler._get_database_path() == str(tmp_path / "bench_3.duckdb")

    def test_isolated_handler_refuses_shared_file(self, tmp_path):
        handler = DuckDBHandler(isolation_id=1, config={"database_path": str(tmp_path / "shared.duckdb")})
        with pytest.raises(ValueError):
            handler._get_database_path()

    def test_missing_path_configuration(self):
        with pytest.raises(ValueError):
            DuckDBHandler(config={})._get_database_path()


class TestPostgresErrorTranslation:

    @pytest.mark.parametrize("error, expected", [
        (psycopg.errors.QueryCanceled("canceling statement due to statement timeout"), StatementTimeout),
        (psycopg.errors.FeatureNotSupported("feature not supported"), UnsupportedFeature),
        (psycopg.errors.ConnectionException("connection failure"), ConnectionLost),
        (psycopg.errors.AdminShutdown("terminating connection due to administrator command"), ConnectionLost),
        (psycopg.errors.SyntaxError("syntax error at or near \"SELEC\""), StatementError),
    ])
    def test_translate_error(self, error, expected):
        translated = PostgresHandler(config={"dsn": "postgresql://unused"})._translate_error(error)

        assert type(translated) is expected

    def test_broken_connection_is_connection_lost(self):
        handler = PostgresHandler(config={"dsn": "postgresql://unused"})
        handler.connection = types.SimpleNamespace(broken=True, closed=False)

        translated = handler._translate_error(psycopg.OperationalError("server closed the connection unexpectedly"))

        assert type(translated) is ConnectionLost

    def test_healthy_connection_keeps_operational_error(self):
        handler = PostgresHandler(config={"dsn": "postgresql://unused"})
        handler.connection = types.SimpleNamespace(broken=False, closed=False)

        translated = handler._translate_error(psycopg.OperationalError("out of shared memory"))

        assert type(translated) is StatementError


class TestDatabaseFactory:

    def test_creates_handlers(self):
        assert isinstance(DatabaseFactory.create_handler(DatabaseType.DUCKDB, {}), DuckDBHandler)
        handler = DatabaseFactory.create_handler(DatabaseType.POSTGRESQL, {"dsn": "x"}, isolation_id=2)
        assert isinstance(handler, PostgresHandler)
        assert handler.isolation_id == 2

    def test_supported_types(self):
        assert set(DatabaseFactory.get_supported_database_types()) == {"duckdb", "postgresql"}

    def test_database_type_aliases(self):
        assert DatabaseType.from_name("Postgres") is DatabaseType.POSTGRESQL
        assert DatabaseType.from_name("duckdb") is DatabaseType.DUCKDB
        with pytest.raises(ValueError):
            DatabaseType.from_name("oracle")
