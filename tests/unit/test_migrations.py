"""
Unit tests for the alembic migrations, rendered offline for PostgreSQL.
"""

import importlib.util
import io
from pathlib import Path

import pytest
from alembic.migration import MigrationContext
from alembic.operations import Operations

VERSIONS = Path(__file__).resolve().parents[2] / "alembic" / "versions"


def load_revision(filename: str):
    spec = importlib.util.spec_from_file_location(filename.removesuffix(".py"), VERSIONS / filename)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def render(step) -> str:
    buf = io.StringIO()
    context = MigrationContext.configure(
        dialect_name="postgresql",
        opts={"as_sql": True, "output_buffer": buf},
    )
    with Operations.context(context):
        step()
    return buf.getvalue()


@pytest.fixture
def initial():
    return load_revision("001_initial_schema.py")


class TestInitialSchema:
    """Tests for revision 001."""

    def test_upgrade_creates_queue(self, initial):
        """Test the queue table matches the model definition."""
        sql = render(initial.upgrade)

        assert "CREATE TABLE queue" in sql
        assert "msg_id BIGSERIAL NOT NULL" in sql
        assert "enqueued_at TIMESTAMP WITH TIME ZONE DEFAULT statement_timestamp() NOT NULL" in sql
        assert "message BYTEA NOT NULL" in sql
        assert "CONSTRAINT ck_queue_visible_after_enqueued CHECK (visible_at >= enqueued_at)" in sql
        assert "CREATE INDEX ix_queue_visible_at_msg_id ON queue (visible_at, msg_id)" in sql

    def test_downgrade_drops_queue(self, initial):
        sql = render(initial.downgrade)

        assert "DROP INDEX ix_queue_visible_at_msg_id" in sql
        assert "DROP TABLE queue" in sql
