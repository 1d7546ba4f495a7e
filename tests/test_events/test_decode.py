"""Tests for event record decoding."""

from datetime import UTC, datetime

import pytest

from reproq_tui.events.decode import parse_event, parse_timestamp, to_string
from reproq_tui.events.models import Event


class TestParseEvent:
    """Tests for parse_event."""

    def test_epoch_with_fraction(self) -> None:
        """Fractional epoch seconds should keep sub-second precision."""
        event = parse_event('{"ts":1700000000.5,"level":"info","type":"task","msg":"ok"}')

        assert event is not None
        assert int(event.timestamp.timestamp()) == 1700000000
        assert event.timestamp.microsecond != 0
        assert event.level == "info"
        assert event.type == "task"
        assert event.message == "ok"

    def test_malformed_json(self) -> None:
        """Invalid JSON should be rejected without raising."""
        assert parse_event("{not json") is None
        assert parse_event("") is None

    def test_non_object(self) -> None:
        """Top-level values other than objects should be rejected."""
        assert parse_event("[1, 2]") is None
        assert parse_event('"text"') is None
        assert parse_event("null") is None

    @pytest.mark.parametrize(
        "payload",
        ['{"level": NaN}', '{"msg": "x", "ts": Infinity}', '{"metadata": {"n": -Infinity}}'],
    )
    def test_non_standard_constants_rejected(self, payload: str) -> None:
        """NaN and Infinity are not JSON and should drop the record."""
        assert parse_event(payload) is None

    def test_rfc3339_nano(self) -> None:
        """Nanosecond timestamps should be truncated to microseconds."""
        event = parse_event('{"ts":"2024-03-01T12:30:45.123456789Z","msg":"x"}')

        assert event is not None
        assert event.timestamp == datetime(2024, 3, 1, 12, 30, 45, 123456, tzinfo=UTC)

    def test_missing_timestamp_defaults_to_now(self) -> None:
        """Missing or invalid ts should be replaced with the current time."""
        before = datetime.now(UTC)
        event = parse_event('{"ts":"yesterday","msg":"x"}')
        after = datetime.now(UTC)

        assert event is not None
        assert before <= event.timestamp <= after

    def test_field_coercion(self) -> None:
        """Numbers should render without decimals, other types as empty."""
        event = parse_event(
            '{"msg": 12.7, "task_id": 42, "worker_id": true, "queue": null, '
            '"level": ["x"], "type": {"a": 1}}'
        )

        assert event is not None
        assert event.message == "13"
        assert event.task_id == "42"
        assert event.worker_id == ""
        assert event.queue == ""
        assert event.level == ""
        assert event.type == ""

    def test_metadata_flattened(self) -> None:
        """Metadata values should be coerced like top-level fields."""
        event = parse_event('{"msg":"x","metadata":{"role":"beat","attempt":3,"ok":false}}')

        assert event is not None
        assert event.metadata == {"role": "beat", "attempt": "3", "ok": ""}

    def test_metadata_not_object(self) -> None:
        """Non-object metadata should be ignored."""
        event = parse_event('{"msg":"x","metadata":[1,2]}')

        assert event is not None
        assert event.metadata == {}


class TestCoercionHelpers:
    """Tests for to_string and parse_timestamp."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("text", "text"),
            (5, "5"),
            (2.0, "2"),
            (True, ""),
            (None, ""),
            ([1], ""),
        ],
    )
    def test_to_string(self, value: object, expected: str) -> None:
        """Values should coerce to their display string."""
        assert to_string(value) == expected

    def test_parse_timestamp_offset(self) -> None:
        """Offsets should be preserved as aware datetimes."""
        parsed = parse_timestamp("2024-03-01T12:00:00+02:00")
        assert parsed is not None
        assert parsed.astimezone(UTC).hour == 10

    def test_parse_timestamp_naive_rejected(self) -> None:
        """Timestamps without an offset should be rejected."""
        assert parse_timestamp("2024-03-01T12:00:00") is None

    @pytest.mark.parametrize(
        "value",
        [
            "2024-01-01 00:00:00Z",
            "20240101T000000Z",
            "2024-01-01T00:00Z",
            "2024-01-01",
            " 2024-01-01T00:00:00Z",
        ],
    )
    def test_parse_timestamp_requires_rfc3339(self, value: str) -> None:
        """Only the extended format with a T separator should be accepted."""
        assert parse_timestamp(value) is None

    def test_parse_timestamp_bool_rejected(self) -> None:
        """Booleans are not epoch numbers."""
        assert parse_timestamp(True) is None


class TestEventModel:
    """Tests for Event."""

    def test_to_dict_uses_wire_names(self) -> None:
        """to_dict should use ts/msg and omit empty optional fields."""
        ts = datetime(2024, 1, 1, tzinfo=UTC)
        event = Event(timestamp=ts, level="info", type="task", message="done", queue="default")

        data = event.to_dict()

        assert data["ts"] == ts.isoformat()
        assert data["msg"] == "done"
        assert data["queue"] == "default"
        assert "task_id" not in data
        assert "metadata" not in data

    def test_metadata_read_only(self) -> None:
        """Metadata should not change after construction."""
        source = {"role": "beat"}
        event = Event(metadata=source)
        source["role"] = "worker"

        assert event.metadata == {"role": "beat"}
        with pytest.raises(TypeError):
            event.metadata["role"] = "worker"  # type: ignore[index]
        assert event.to_dict()["metadata"] == {"role": "beat"}
