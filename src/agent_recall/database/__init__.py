"""Database package - PostgreSQL + pgvector integration."""

from agent_recall.database.base import DatabaseAdapter
from agent_recall.database.repository import PostgresDatabaseAdapter
from agent_recall.database.schema import DatabaseSchema

__all__ = ["DatabaseAdapter", "DatabaseSchema", "PostgresDatabaseAdapter"]
