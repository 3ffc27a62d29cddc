"""
mesh_window.py - Rolling Window Reduction

Folds a batch of mesh events into the statistics the health classifier and
remediation advisor read: delivery ratio, latency p50/p95, median hop count,
peer reach and the radio configuration in effect.

Each call allocates its own accumulators, so overlapping runs never share
state. The radio seed is passed in, never held at module level.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple

import numpy as np

from mesh_config import DEFAULT_RADIO, DEFAULT_WINDOW_SEC, RadioState
from mesh_events import Event, MessageDelivered, MessageSent, PeerSeen, RadioConfig


# =============================================================================
# Quantile Estimator
# =============================================================================

def quantile(samples: Sequence[float], q: float) -> float:
    """
    Linear-interpolation quantile, 0 for an empty sample.

    pos = (n-1) * q, interpolating between the two neighbouring order
    statistics (numpy's default "linear" method). The input is not modified.

    Args:
        samples: Numeric sample, any order
        q: Quantile in [0, 1]

    Returns:
        Interpolated order statistic as float

    Raises:
        ValueError: If q is outside [0, 1]
    """
    if not 0.0 <= q <= 1.0:
        raise ValueError(f"quantile q must be in [0, 1], got {q}")
    if len(samples) == 0:
        return 0.0
    return float(np.quantile(np.asarray(samples, dtype=float), q, method="linear"))


# =============================================================================
# WindowStats
# =============================================================================

@dataclass(frozen=True)
class WindowStats:
    """
    Statistics for one trailing window.

    Attributes:
        sent_ids: Unique ids of messages sent in the window
        delivered_ids: Unique ids with at least one delivery in the window
        latencies: Delivery latencies (ms) in arrival order
        hops: Delivery hop counts in arrival order
        peers: Unique peer ids sighted
        radio: Radio configuration after folding all radio events
    """
    sent_ids: FrozenSet[str]
    delivered_ids: FrozenSet[str]
    latencies: Tuple[float, ...]
    hops: Tuple[float, ...]
    peers: FrozenSet[str]
    radio: RadioState

    @property
    def delivery(self) -> float:
        """Share of sent ids that were delivered; 0 when nothing was sent."""
        if not self.sent_ids:
            return 0.0
        return len(self.delivered_ids & self.sent_ids) / len(self.sent_ids)

    @property
    def p50(self) -> float:
        return quantile(self.latencies, 0.5)

    @property
    def p95(self) -> float:
        return quantile(self.latencies, 0.95)

    @property
    def median_hops(self) -> float:
        return quantile(self.hops, 0.5)

    @property
    def reach(self) -> int:
        return len(self.peers)


# =============================================================================
# Window Reducer
# =============================================================================

def in_window(event: Event, now: float, window_sec: float) -> bool:
    """True if the event falls in the trailing window. Missing ts counts as now."""
    ts = now if event.ts is None else event.ts
    return now - ts <= window_sec


def merge_radio(radio: RadioState, update: RadioConfig) -> RadioState:
    """Override only the fields the radio event reported."""
    changes = {
        name: getattr(update, name)
        for name in ("tx_dbm", "adv_interval_ms", "ttl", "wifi_direct")
        if getattr(update, name) is not None
    }
    return replace(radio, **changes) if changes else radio


def reduce_window(
    events: Iterable[Event],
    now: float,
    window_sec: float = DEFAULT_WINDOW_SEC,
    radio_seed: Optional[RadioState] = None,
) -> WindowStats:
    """
    Filter events to the trailing window and fold them into WindowStats.

    Counting is order-independent; radio updates apply in event order, last
    write wins per field.

    Args:
        events: Events in arrival order
        now: Reference Unix time in seconds
        window_sec: Window length in seconds
        radio_seed: Radio state before any radio event (default DEFAULT_RADIO)

    Returns:
        WindowStats for the window
    """
    sent: Set[str] = set()
    delivered: Set[str] = set()
    latencies: List[float] = []
    hops: List[float] = []
    peers: Set[str] = set()
    radio = DEFAULT_RADIO if radio_seed is None else radio_seed

    for event in events:
        if not in_window(event, now, window_sec):
            continue
        if isinstance(event, MessageSent):
            sent.add(event.id)
        elif isinstance(event, MessageDelivered):
            delivered.add(event.id)
            if event.latency_ms is not None:
                latencies.append(event.latency_ms)
            if event.hops is not None:
                hops.append(event.hops)
        elif isinstance(event, PeerSeen):
            peers.add(event.peer)
        elif isinstance(event, RadioConfig):
            radio = merge_radio(radio, event)

    return WindowStats(
        sent_ids=frozenset(sent),
        delivered_ids=frozenset(delivered),
        latencies=tuple(latencies),
        hops=tuple(hops),
        peers=frozenset(peers),
        radio=radio,
    )
