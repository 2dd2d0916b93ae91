from typing import Any, Dict, List, Optional

from optimization_bench.databases.base_handler import DatabaseHandler
from optimization_bench.databases.duckdb import DuckDBHandler
from optimization_bench.databases.postgres import PostgresHandler
from optimization_bench.databases.types import DatabaseType


class DatabaseFactory:

    _database_implementations = {
        DatabaseType.DUCKDB: DuckDBHandler,
        DatabaseType.POSTGRESQL: PostgresHandler,
    }

    @classmethod
    def create_handler(cls, database_type: DatabaseType, config: Dict[str, Any],
                       isolation_id: Optional[int] = None) -> DatabaseHandler:
        if database_type not in cls._database_implementations:
            raise ValueError(f"Database type {database_type} not supported")

        database_class = cls._database_implementations[database_type]
        return database_class(isolation_id=isolation_id, config=config)

    @classmethod
    def get_supported_database_types(cls) -> List[str]:
        return [db_type.value for db_type in cls._database_implementations.keys()]
