"""Database layer: ORM models and the async SQLite connection."""

from netpulse.database.connection import Database
from netpulse.database.models import Base

__all__ = ["Base", "Database"]
