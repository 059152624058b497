"""
Unit tests for the record type.
"""

import json
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from dbqueue.errors import ScanError
from dbqueue.types.record import Record

ENQUEUED = datetime(2024, 1, 2, 3, 4, 5, 123000)
VISIBLE = datetime(2024, 1, 2, 3, 4, 6, 123000)


def make_row(**overrides):
    values = {
        "msg_id": 7,
        "enqueued_at": ENQUEUED,
        "visible_at": VISIBLE,
        "message": b'{"a":1}',
    }
    values.update(overrides)
    return SimpleNamespace(**values)


class TestFromRow:
    """Tests for decoding result rows."""

    def test_decodes_row(self):
        """Test a well-formed row."""
        record = Record.from_row(make_row())

        assert record.msg_id == 7
        assert record.message == b'{"a":1}'
        assert record.enqueued_at == ENQUEUED.replace(tzinfo=timezone.utc)
        assert record.visible_at.tzinfo == timezone.utc

    def test_accepts_memoryview_payload(self):
        """Test drivers returning memoryview for binary columns."""
        record = Record.from_row(make_row(message=memoryview(b"raw")))

        assert record.message == b"raw"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"msg_id": None},
            {"msg_id": "7"},
            {"visible_at": "2024-01-02"},
            {"enqueued_at": None},
            {"message": "text"},
            {"message": None},
        ],
    )
    def test_rejects_bad_columns(self, overrides):
        """Test undecodable values raise ScanError."""
        with pytest.raises(ScanError):
            Record.from_row(make_row(**overrides))

    def test_rejects_missing_column(self):
        """Test rows without a queue column raise ScanError."""
        row = SimpleNamespace(msg_id=1, enqueued_at=ENQUEUED, visible_at=VISIBLE)

        with pytest.raises(ScanError):
            Record.from_row(row)


class TestToJson:
    """Tests for the JSON-lines rendering."""

    def test_embeds_json_payload(self):
        """Test JSON payloads are embedded as documents."""
        line = Record.from_row(make_row()).to_json()

        assert json.loads(line) == {
            "msg_id": 7,
            "enqueued_at": "2024-01-02T03:04:05.123000+00:00",
            "visible_at": "2024-01-02T03:04:06.123000+00:00",
            "message": {"a": 1},
        }

    def test_plain_text_payload(self):
        """Test non-JSON text is emitted as a string."""
        data = Record.from_row(make_row(message=b"hello")).to_dict()

        assert data["message"] == "hello"

    def test_binary_payload(self):
        """Test non-UTF-8 payloads are base64 encoded."""
        data = Record.from_row(make_row(message=b"\xff\x00")).to_dict()

        assert data["message"] == {"base64": "/wA="}
