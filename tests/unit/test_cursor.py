"""
Unit tests for the delivery cursor.
"""

from datetime import datetime, timedelta, timezone

from dbqueue.constants import EARLIEST_TIMESTAMP
from dbqueue.cursor import Cursor, Position

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


class TestCursor:
    """Tests for Cursor."""

    def test_defaults_to_earliest(self):
        """Test a new cursor starts before every message."""
        cursor = Cursor()

        assert cursor.value == EARLIEST_TIMESTAMP
        assert cursor.position == Position(EARLIEST_TIMESTAMP, None)

    def test_advance_moves_forward(self):
        """Test advancing to a later deadline."""
        cursor = Cursor(START)

        moved = cursor.advance(START + timedelta(seconds=1), 5)

        assert moved is True
        assert cursor.position == Position(START + timedelta(seconds=1), 5)

    def test_advance_within_same_deadline(self):
        """Test a higher msg_id at the same deadline moves the cursor."""
        cursor = Cursor(START, 3)

        assert cursor.advance(START, 4) is True
        assert cursor.position == Position(START, 4)

        assert cursor.advance(START, 2) is False
        assert cursor.msg_id == 4

    def test_bare_timestamp_is_past_whole_deadline(self):
        """Test a cursor without msg_id ignores messages at its deadline."""
        cursor = Cursor(START)

        assert cursor.advance(START, 10**9) is False
        assert cursor.position == Position(START, None)

    def test_advance_never_moves_back(self):
        """Test earlier deadlines are ignored whatever their msg_id."""
        cursor = Cursor(START, 1)

        assert cursor.advance(START - timedelta(days=1), 100) is False
        assert cursor.position == Position(START, 1)

    def test_reset_can_move_back(self):
        """Test reset is an unconditional setter."""
        cursor = Cursor(START, 7)

        cursor.reset(START - timedelta(hours=1))

        assert cursor.position == Position(START - timedelta(hours=1), None)

    def test_values_are_normalized_to_utc(self):
        """Test naive values are UTC and offsets are converted."""
        plus_two = timezone(timedelta(hours=2))
        cursor = Cursor(datetime(2024, 1, 1, 12, 0))

        assert cursor.value == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert cursor.value.tzinfo == timezone.utc

        cursor.reset(datetime(2024, 1, 1, 14, 0, tzinfo=plus_two), 3)
        assert cursor.value == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert cursor.value.utcoffset() == timedelta(0)
        assert cursor.msg_id == 3
