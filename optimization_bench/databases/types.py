from enum import Enum


class DatabaseType(Enum):
    """
    Database products a scenario catalog can be replayed against.
    """
    POSTGRESQL = "postgresql"
    DUCKDB = "duckdb"

    @classmethod
    def from_name(cls, name: str) -> "DatabaseType":
        aliases = {"postgres": cls.POSTGRESQL, "pg": cls.POSTGRESQL}
        normalized = name.strip().lower()
        if normalized in aliases:
            return aliases[normalized]
        return cls(normalized)
