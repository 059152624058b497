"""
Type definitions for the message queue.
"""

from dbqueue.types.record import Record, ensure_utc

__all__ = [
    "Record",
    "ensure_utc",
]
