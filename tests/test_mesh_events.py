"""
Tests for mesh_events.py - Event parsing, JSONL loading, synthetic fallback
"""

import json
import logging

import pytest

from mesh_events import (
    MalformedEvent,
    MessageDelivered,
    MessageSent,
    PeerSeen,
    RadioConfig,
    load_events,
    parse_event,
    synthesize_events,
)


NOW = 1_700_000_000


# -----------------------------------------------------------------------------
# parse_event
# -----------------------------------------------------------------------------

class TestParseEvent:
    """Tests for parse_event()."""

    def test_message_sent(self):
        assert parse_event({"type": "message_sent", "id": "m1", "ts": NOW}) == MessageSent(id="m1", ts=NOW)

    def test_message_delivered_full(self):
        event = parse_event({
            "type": "message_delivered", "id": "m1", "hops": 2, "latency_ms": 812.5, "ts": NOW,
        })
        assert event == MessageDelivered(id="m1", hops=2, latency_ms=812.5, ts=NOW)

    def test_non_numeric_latency_is_absent(self):
        event = parse_event({"type": "message_delivered", "id": "m1", "latency_ms": "fast"})
        assert event.latency_ms is None
        assert event.hops is None

    def test_bool_is_not_numeric(self):
        event = parse_event({"type": "message_delivered", "id": "m1", "hops": True})
        assert event.hops is None

    def test_peer_seen(self):
        event = parse_event({"type": "peer_seen", "peer": "P:3fa2", "rssi": -61.0, "ts": NOW})
        assert event == PeerSeen(peer="P:3fa2", rssi=-61.0, ts=NOW)

    def test_radio_partial(self):
        event = parse_event({"type": "radio", "ttl": 4})
        assert event == RadioConfig(ttl=4)
        assert event.tx_dbm is None
        assert event.ts is None

    def test_radio_bad_field_type(self):
        with pytest.raises(MalformedEvent):
            parse_event({"type": "radio", "wifi_direct": "yes"})
        with pytest.raises(MalformedEvent):
            parse_event({"type": "radio", "ttl": "3"})

    def test_unknown_type(self):
        with pytest.raises(MalformedEvent, match="unknown event type"):
            parse_event({"type": "battery", "level": 0.5})

    @pytest.mark.parametrize("record", [
        {"type": "message_sent"},
        {"type": "message_sent", "id": ""},
        {"type": "message_delivered", "id": 7},
        {"type": "peer_seen", "rssi": -40},
    ])
    def test_missing_required_field(self, record):
        with pytest.raises(MalformedEvent):
            parse_event(record)

    def test_bad_ts(self):
        with pytest.raises(MalformedEvent):
            parse_event({"type": "message_sent", "id": "m1", "ts": "yesterday"})

    def test_not_an_object(self):
        with pytest.raises(MalformedEvent):
            parse_event(["message_sent", "m1"])

    def test_malformed_event_is_value_error(self):
        assert issubclass(MalformedEvent, ValueError)

    def test_to_dict_drops_omitted_fields(self):
        assert RadioConfig(ttl=4, ts=NOW).to_dict() == {"type": "radio", "ttl": 4, "ts": NOW}
        assert MessageDelivered(id="m1").to_dict() == {"type": "message_delivered", "id": "m1"}

    def test_oversized_int_counts_as_absent(self):
        event = parse_event({"type": "message_delivered", "id": "m0", "hops": 10 ** 400, "latency_ms": 700})
        assert event == MessageDelivered(id="m0", hops=None, latency_ms=700)

    def test_oversized_int_ts_is_malformed(self):
        with pytest.raises(MalformedEvent, match="ts"):
            parse_event({"type": "message_sent", "id": "m0", "ts": 10 ** 400})


# -----------------------------------------------------------------------------
# load_events
# -----------------------------------------------------------------------------

class TestLoadEvents:
    """Tests for load_events()."""

    def test_missing_file_returns_empty(self, tmp_path, caplog):
        with caplog.at_level(logging.WARNING):
            assert load_events(str(tmp_path / "missing.jsonl")) == []
        assert "not found" in caplog.text

    def test_empty_file_returns_empty(self, tmp_path):
        log = tmp_path / "events.jsonl"
        log.write_text("")
        assert load_events(str(log)) == []

    def test_preserves_order_and_skips_malformed(self, tmp_path, caplog):
        log = tmp_path / "events.jsonl"
        lines = [
            json.dumps({"type": "radio", "tx_dbm": 4, "ts": NOW}),
            "{not json",
            "",
            "# comment",
            json.dumps({"type": "message_sent", "id": "m0", "ts": NOW}),
            json.dumps({"type": "mystery", "ts": NOW}),
            json.dumps({"type": "message_delivered", "id": "m0", "latency_ms": 700, "ts": NOW}),
        ]
        log.write_text("\n".join(lines) + "\n")

        with caplog.at_level(logging.WARNING):
            events = load_events(str(log))

        assert events == [
            RadioConfig(tx_dbm=4, ts=NOW),
            MessageSent(id="m0", ts=NOW),
            MessageDelivered(id="m0", latency_ms=700, ts=NOW),
        ]
        assert f"{log}:2" in caplog.text
        assert f"{log}:6" in caplog.text

    def test_skips_undecodable_bytes(self, tmp_path, caplog):
        log = tmp_path / "events.jsonl"
        log.write_bytes(
            b'{"type": "message_sent", "id": "m0", "ts": 1700000000}\n'
            b"\xff\xfe bad\n"
            b'{"type": "message_sent", "id": "m1", "ts": 1700000000}\n'
        )

        with caplog.at_level(logging.WARNING):
            events = load_events(str(log))

        assert events == [MessageSent(id="m0", ts=NOW), MessageSent(id="m1", ts=NOW)]
        assert f"{log}:2" in caplog.text

    def test_skips_ts_too_large_for_a_float(self, tmp_path, caplog):
        log = tmp_path / "events.jsonl"
        log.write_text(
            '{"type": "message_sent", "id": "m0", "ts": ' + "9" * 400 + "}\n"
            + json.dumps({"type": "message_sent", "id": "m1", "ts": NOW}) + "\n"
        )

        with caplog.at_level(logging.WARNING):
            events = load_events(str(log))

        assert events == [MessageSent(id="m1", ts=NOW)]
        assert f"{log}:1" in caplog.text

    def test_round_trip_through_to_dict(self, tmp_path):
        events = synthesize_events(NOW, seed=5)
        log = tmp_path / "events.jsonl"
        log.write_text("".join(json.dumps(e.to_dict()) + "\n" for e in events))
        assert load_events(str(log)) == events


# -----------------------------------------------------------------------------
# synthesize_events
# -----------------------------------------------------------------------------

class TestSynthesizeEvents:
    """Tests for synthesize_events()."""

    def test_deterministic_with_seed(self):
        assert synthesize_events(NOW, seed=42) == synthesize_events(NOW, seed=42)

    def test_starts_with_radio_snapshot(self):
        first = synthesize_events(NOW, seed=1)[0]
        assert first == RadioConfig(tx_dbm=4, adv_interval_ms=400, ttl=3, wifi_direct=False, ts=NOW - 60)

    def test_shape(self):
        events = synthesize_events(NOW, seed=9)
        sent = [e for e in events if isinstance(e, MessageSent)]
        delivered = [e for e in events if isinstance(e, MessageDelivered)]
        peers = [e for e in events if isinstance(e, PeerSeen)]

        assert len(sent) == 25
        assert len(peers) == 75
        assert len(delivered) <= 25
        assert all(500.0 <= e.latency_ms <= 1700.0 for e in delivered)
        assert all(e.hops in (2, 3, 5) for e in delivered)
        assert all(-80.0 <= e.rssi <= -50.0 for e in peers)

    def test_all_events_within_default_window(self):
        events = synthesize_events(NOW, seed=3)
        assert all(NOW - e.ts <= 600 for e in events)

    def test_message_count(self):
        events = synthesize_events(NOW, seed=3, n_messages=5)
        assert sum(isinstance(e, MessageSent) for e in events) == 5
