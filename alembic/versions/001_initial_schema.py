"""Initial schema with queue table

Revision ID: 001
Revises:
Create Date: 2024-01-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create append-only queue table
    op.create_table(
        "queue",
        sa.Column("msg_id", sa.BigInteger, autoincrement=True, nullable=False),
        sa.Column(
            "enqueued_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("statement_timestamp()"),
        ),
        sa.Column("visible_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("message", sa.LargeBinary, nullable=False),
        sa.PrimaryKeyConstraint("msg_id"),
        sa.CheckConstraint(
            "visible_at >= enqueued_at",
            name="ck_queue_visible_after_enqueued",
        ),
    )

    # Index for range polling by deadline
    op.create_index("ix_queue_visible_at_msg_id", "queue", ["visible_at", "msg_id"])


def downgrade() -> None:
    op.drop_index("ix_queue_visible_at_msg_id")
    op.drop_table("queue")
