"""Database package — declarative base and the shared engine."""

from riskmapper.db.base import Base, close_db, init_db

__all__ = [
    "Base",
    "close_db",
    "init_db",
]
