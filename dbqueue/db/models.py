"""
SQLAlchemy database models.
Defines the append-only queue table.
"""

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    LargeBinary,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from dbqueue.constants import QUEUE_TABLE_NAME
from dbqueue.db.clock import clock_now


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class QueueMessage(Base):
    """
    A message row in the queue table.

    Rows are written once by a produce call and never updated or deleted.
    Delivery is a pure function of time: a row is eligible once the server
    clock reaches ``visible_at``.

    Key constraints:
    - msg_id is assigned in insertion order and breaks visible_at ties
    - visible_at is never earlier than enqueued_at
    - message holds the payload bytes exactly as produced
    """

    __tablename__ = QUEUE_TABLE_NAME

    # SQLite only auto-increments an INTEGER PRIMARY KEY
    msg_id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )

    enqueued_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=clock_now(),
    )

    # Visibility deadline
    visible_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    message: Mapped[bytes] = mapped_column(
        LargeBinary,
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint(
            "visible_at >= enqueued_at",
            name="ck_queue_visible_after_enqueued",
        ),
        # Index for range polling by deadline
        Index("ix_queue_visible_at_msg_id", "visible_at", "msg_id"),
    )

    def __repr__(self) -> str:
        return (
            f"QueueMessage(msg_id={self.msg_id}, "
            f"visible_at={self.visible_at}, size={len(self.message or b'')})"
        )
