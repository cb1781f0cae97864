"""Database session and metadata helpers."""

from .session import Base, dispose_engine, get_engine, get_sessionmaker, init_db

__all__ = [
    "Base",
    "dispose_engine",
    "get_engine",
    "get_sessionmaker",
    "init_db",
]
