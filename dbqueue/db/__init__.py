"""
Database module.
Contains database connection, models, clock expressions and the queue store.
"""

from dbqueue.db.clock import clock_after, clock_now
from dbqueue.db.connection import (
    close_db,
    create_engine,
    create_schema,
    create_session_factory,
    get_engine,
    init_db,
)
from dbqueue.db.models import Base, QueueMessage
from dbqueue.db.store import QueueStore

__all__ = [
    "clock_now",
    "clock_after",
    "create_engine",
    "create_schema",
    "create_session_factory",
    "get_engine",
    "init_db",
    "close_db",
    "Base",
    "QueueMessage",
    "QueueStore",
]
