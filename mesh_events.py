"""
mesh_events.py - Mesh Telemetry Events

Typed events for the mesh health pipeline, plus the two ways of getting them:
reading a newline-delimited JSON log, or synthesizing a healthy-ish sample when
no log exists yet.

Schema (events.jsonl lines):
  {"type": "radio", "tx_dbm": 4, "adv_interval_ms": 400, "ttl": 3, "wifi_direct": false, "ts": 1700000000}
  {"type": "message_sent", "id": "m0", "ts": 1700000000}
  {"type": "message_delivered", "id": "m0", "hops": 2, "latency_ms": 812.5, "ts": 1700000002}
  {"type": "peer_seen", "peer": "P:3fa2", "rssi": -61.0, "ts": 1700000000}

`ts` is Unix seconds and may be omitted. Radio events are partial updates:
omitted fields keep whatever value was known before.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Optional, Union

import numpy as np

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_LOG_PATH = "logs/events.jsonl"

# Synthetic sample shape
SYNTH_MESSAGES = 25
SYNTH_PEERS_PER_MESSAGE = 3
SYNTH_DELIVERY_PROB = 0.96
SYNTH_LATENCY_BASE_MS = 500.0
SYNTH_LATENCY_SPREAD_MS = 1200.0


class MalformedEvent(ValueError):
    """Raised at the ingestion boundary for records that are not valid events."""


# =============================================================================
# Event Dataclasses
# =============================================================================

@dataclass(frozen=True)
class _Event:
    type_tag: ClassVar[str] = ""

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the JSONL record form, dropping omitted fields."""
        record: Dict[str, Any] = {"type": self.type_tag}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is not None:
                record[f.name] = value
        return record


@dataclass(frozen=True)
class RadioConfig(_Event):
    """Radio parameter snapshot. None means the field was not reported."""
    type_tag: ClassVar[str] = "radio"
    tx_dbm: Optional[float] = None
    adv_interval_ms: Optional[float] = None
    ttl: Optional[int] = None
    wifi_direct: Optional[bool] = None
    ts: Optional[float] = None


@dataclass(frozen=True)
class MessageSent(_Event):
    type_tag: ClassVar[str] = "message_sent"
    id: str
    ts: Optional[float] = None


@dataclass(frozen=True)
class MessageDelivered(_Event):
    type_tag: ClassVar[str] = "message_delivered"
    id: str
    hops: Optional[float] = None
    latency_ms: Optional[float] = None
    ts: Optional[float] = None


@dataclass(frozen=True)
class PeerSeen(_Event):
    type_tag: ClassVar[str] = "peer_seen"
    peer: str
    rssi: Optional[float] = None
    ts: Optional[float] = None


Event = Union[RadioConfig, MessageSent, MessageDelivered, PeerSeen]


# =============================================================================
# Parsing
# =============================================================================

def _is_number(value: Any) -> bool:
    """Finite int/float, excluding bool and ints too large for a float."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def _optional_number(record: Dict[str, Any], key: str) -> Optional[float]:
    """Numeric field or None; non-numeric values are treated as absent."""
    value = record.get(key)
    return value if _is_number(value) else None


def _required_str(record: Dict[str, Any], key: str) -> str:
    value = record.get(key)
    if not isinstance(value, str) or not value:
        raise MalformedEvent(f"{record.get('type')} event missing '{key}'")
    return value


def _parse_ts(record: Dict[str, Any]) -> Optional[float]:
    if "ts" not in record or record["ts"] is None:
        return None
    if not _is_number(record["ts"]):
        raise MalformedEvent(f"ts must be numeric, got {type(record['ts']).__name__}")
    return record["ts"]


def _parse_radio(record: Dict[str, Any]) -> RadioConfig:
    values: Dict[str, Any] = {}
    for key in ("tx_dbm", "adv_interval_ms", "ttl"):
        if key in record and record[key] is not None:
            if not _is_number(record[key]):
                raise MalformedEvent(f"radio.{key} must be numeric, got {record[key]!r}")
            values[key] = record[key]
    if "wifi_direct" in record and record["wifi_direct"] is not None:
        if not isinstance(record["wifi_direct"], bool):
            raise MalformedEvent(f"radio.wifi_direct must be boolean, got {record['wifi_direct']!r}")
        values["wifi_direct"] = record["wifi_direct"]
    return RadioConfig(ts=_parse_ts(record), **values)


def parse_event(record: Any) -> Event:
    """
    Turn one decoded JSON record into a typed event.

    Args:
        record: Decoded JSON value

    Returns:
        RadioConfig, MessageSent, MessageDelivered or PeerSeen

    Raises:
        MalformedEvent: Unknown type tag, missing required field, bad ts
    """
    if not isinstance(record, dict):
        raise MalformedEvent(f"event must be an object, got {type(record).__name__}")

    kind = record.get("type")
    if kind == RadioConfig.type_tag:
        return _parse_radio(record)
    if kind == MessageSent.type_tag:
        return MessageSent(id=_required_str(record, "id"), ts=_parse_ts(record))
    if kind == MessageDelivered.type_tag:
        return MessageDelivered(
            id=_required_str(record, "id"),
            hops=_optional_number(record, "hops"),
            latency_ms=_optional_number(record, "latency_ms"),
            ts=_parse_ts(record),
        )
    if kind == PeerSeen.type_tag:
        return PeerSeen(
            peer=_required_str(record, "peer"),
            rssi=_optional_number(record, "rssi"),
            ts=_parse_ts(record),
        )
    raise MalformedEvent(f"unknown event type: {kind!r}")


def load_events(path: str = DEFAULT_LOG_PATH) -> List[Event]:
    """
    Load events from a JSONL log, in file order.

    Missing files return an empty list. Malformed lines are skipped with a
    warning rather than failing the entire load.

    Args:
        path: Path to events JSONL file

    Returns:
        List of parsed events
    """
    log_path = Path(path)
    if not log_path.exists():
        logger.warning(f"Event log not found: {path}")
        return []

    events: List[Event] = []
    with open(log_path, "rb") as f:
        for line_num, raw in enumerate(f, start=1):
            try:
                line = raw.decode("utf-8").strip()
                if not line or line.startswith("#"):
                    continue
                events.append(parse_event(json.loads(line)))
            except ValueError as e:
                # UnicodeDecodeError, JSONDecodeError, MalformedEvent, and int digit limits
                logger.warning(f"Skipping malformed event at {path}:{line_num}: {e}")

    logger.debug(f"Loaded {len(events)} events from {path}")
    return events


# =============================================================================
# Synthetic Fallback
# =============================================================================

def synthesize_events(
    now: int,
    seed: Optional[int] = None,
    n_messages: int = SYNTH_MESSAGES,
) -> List[Event]:
    """
    Simulate a healthy-ish mesh for when no real events exist.

    One radio snapshot a minute ago, then per message: a send, a delivery
    with probability 0.96 (2-3 hops mostly, 5 hops one time in five, latency
    uniform in 500-1700ms), and three peer sightings.

    Args:
        now: Current Unix time in seconds
        seed: Seed for numpy's default_rng; None draws fresh entropy
        n_messages: Number of messages to send

    Returns:
        List of events in arrival order
    """
    rng = np.random.default_rng(seed)
    t0 = now - 60

    events: List[Event] = [
        RadioConfig(tx_dbm=4, adv_interval_ms=400, ttl=3, wifi_direct=False, ts=t0)
    ]
    for i in range(n_messages):
        msg_id = f"m{i}"
        events.append(MessageSent(id=msg_id, ts=t0 + i))

        hops = int(2 + rng.random() * 2) if rng.random() < 0.8 else 5
        latency = SYNTH_LATENCY_BASE_MS + rng.random() * SYNTH_LATENCY_SPREAD_MS
        if rng.random() < SYNTH_DELIVERY_PROB:
            events.append(MessageDelivered(
                id=msg_id, hops=hops, latency_ms=float(latency), ts=t0 + i + 2,
            ))

        for _ in range(SYNTH_PEERS_PER_MESSAGE):
            peer = f"P:{int(rng.integers(0, 0xffff)):x}"
            rssi = -50.0 - rng.random() * 30.0
            events.append(PeerSeen(peer=peer, rssi=float(rssi), ts=t0 + i))

    return events
