"""
Database module.
Contains database connection, models, and repository implementations.
"""

from batchq.db.connection import (
    build_engine,
    close_db,
    create_session_factory,
    get_async_session,
    get_engine,
    get_session_factory,
    init_db,
)
from batchq.db.models import Base, Queue, Task

__all__ = [
    "build_engine",
    "create_session_factory",
    "get_async_session",
    "get_session_factory",
    "get_engine",
    "init_db",
    "close_db",
    "Base",
    "Queue",
    "Task",
]
