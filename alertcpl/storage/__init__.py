"""Storage layer: asyncpg pool and schema bootstrap."""

from alertcpl.storage.database import Database, close_database, get_database
from alertcpl.storage.schema import create_tables

__all__ = ["Database", "close_database", "create_tables", "get_database"]
