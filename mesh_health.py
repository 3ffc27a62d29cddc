"""
mesh_health.py - Mesh Health Verdict and Remediation

Two independent decisions over the same WindowStats:

  classify_health()  red / amber / green against fixed thresholds
  advise()           one reason, one action, one radio patch

They deliberately do not share a branch. The classifier checks the hard red
floor (delivery < 0.20 or no latency samples) before the green gate; the
advisor checks delivery against the configured target first, then p95. An
empty-sample red with zero delivery is therefore explained as a delivery
shortfall, not as "low samples".
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from mesh_config import DEFAULT_THRESHOLDS, Thresholds
from mesh_window import WindowStats


# =============================================================================
# Constants
# =============================================================================

RED_DELIVERY_FLOOR = 0.20          # below this the mesh is red regardless
ADV_INTERVAL_FLOOR_MS = 200        # never suggest advertising faster than this
ADV_INTERVAL_STEP_MS = 100
TX_POWER_STEP_DBM = 3
SHALLOW_MESH_HOPS = 3              # TTL bump only helps below this median

ACTION_HOLD = "hold parameters; keep monitoring"
ACTION_ENABLE_WIFI_DIRECT = "enable Wi-Fi Direct or increase TX power +3 dB"
ACTION_BOOST_TX = "increase TX power +3 dB and shorten adv interval (-100ms)"
ACTION_LATENCY = "shorten adv interval (-100ms) or add 1 hop TTL if median_hops < 3"
ACTION_STEADY = "keep radio steady; gather more samples"
REASON_LOW_SAMPLES = "mesh unstable (low samples)"


class HealthStatus(str, Enum):
    RED = "red"
    AMBER = "amber"
    GREEN = "green"


@dataclass(frozen=True)
class PatchStep:
    """One suggested configuration change: set `key` to `to`."""
    key: str
    to: Any

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "to": self.to}


@dataclass(frozen=True)
class Advice:
    """
    Remediation for one window.

    Attributes:
        reason: Short diagnosis; empty when healthy
        action: Human-readable lever to pull
        patch: Ordered radio changes; None when healthy
    """
    reason: str
    action: str
    patch: Optional[List[PatchStep]]


# =============================================================================
# Health Classifier
# =============================================================================

def classify_health(
    stats: WindowStats,
    threshold: Thresholds = DEFAULT_THRESHOLDS,
) -> HealthStatus:
    """
    Map window statistics to a verdict.

    Red is checked first so an empty latency sample can never pass as green,
    however good the delivery ratio looks.
    """
    delivery = stats.delivery
    if delivery < RED_DELIVERY_FLOOR or not stats.latencies:
        return HealthStatus.RED
    if delivery >= threshold.delivery and stats.p95 <= threshold.p95_ms:
        return HealthStatus.GREEN
    return HealthStatus.AMBER


# =============================================================================
# Remediation Advisor
# =============================================================================

def _pct(ratio: float) -> int:
    """Ratio as a whole percentage, rounding halves up."""
    return round_half_up(ratio * 100)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def format_number(value: float) -> str:
    """2000.0 -> '2000', 2.5 -> '2.5'; never exponent notation."""
    if float(value).is_integer():
        return str(int(value))
    return str(round(value, 2))


def _shorter_adv_interval(adv_interval_ms: int) -> int:
    return max(ADV_INTERVAL_FLOOR_MS, adv_interval_ms - ADV_INTERVAL_STEP_MS)


def advise(
    stats: WindowStats,
    status: HealthStatus,
    threshold: Thresholds = DEFAULT_THRESHOLDS,
) -> Advice:
    """
    Pick one reason, one action and one patch for the window.

    Reason, action and patch always come from the same branch. Patch targets
    step from the integer radio values the receipt reports, so a patch never
    carries a fraction the telemetry beside it does not show.

    Args:
        stats: Reduced window statistics
        status: Verdict from classify_health()
        threshold: Thresholds the verdict was computed against

    Returns:
        Advice; patch is None only for a green verdict
    """
    if status == HealthStatus.GREEN:
        return Advice(reason="", action=ACTION_HOLD, patch=None)

    delivery = stats.delivery
    p95 = stats.p95
    tx_dbm = int(stats.radio.tx_dbm)
    adv_interval_ms = int(stats.radio.adv_interval_ms)
    ttl = int(stats.radio.ttl)

    if delivery < threshold.delivery:
        reason = f"delivery {_pct(delivery)}% < {_pct(threshold.delivery)}%"
        if not stats.radio.wifi_direct:
            action = ACTION_ENABLE_WIFI_DIRECT
            patch = [PatchStep("radio.wifi_direct", True)]
        else:
            action = ACTION_BOOST_TX
            patch = [PatchStep("radio.tx_dbm", tx_dbm + TX_POWER_STEP_DBM)]
        patch.append(PatchStep("radio.adv_interval_ms", _shorter_adv_interval(adv_interval_ms)))
        return Advice(reason=reason, action=action, patch=patch)

    if p95 > threshold.p95_ms:
        reason = f"p95 latency {round_half_up(p95)}ms > {format_number(threshold.p95_ms)}ms"
        patch = []
        if ttl < threshold.ttl_max and stats.median_hops < SHALLOW_MESH_HOPS:
            patch.append(PatchStep("radio.ttl", min(ttl + 1, threshold.ttl_max)))
        patch.append(PatchStep("radio.adv_interval_ms", _shorter_adv_interval(adv_interval_ms)))
        return Advice(reason=reason, action=ACTION_LATENCY, patch=patch)

    # No confident lever yet; keep the patch populated with a no-op.
    return Advice(
        reason=REASON_LOW_SAMPLES,
        action=ACTION_STEADY,
        patch=[PatchStep("radio.adv_interval_ms", adv_interval_ms)],
    )
