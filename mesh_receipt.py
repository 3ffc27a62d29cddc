"""
mesh_receipt.py - Mesh Health Receipt

Assembles the receipt for one window and writes it out. The receipt answers
"is the mesh live and healthy?" with evidence, at most one caveat, one action
and, when unhealthy, a radio patch to try next.

Receipt:
  {
    "claim": "Mesh is live and healthy",
    "because": [str, str, str],
    "but": [] | [str],
    "so": str,
    "telem": {
      "window_sec": int,
      "delivery_success": float,
      "latency_ms_p50": int,
      "latency_ms_p95": int,
      "reach_peers": int,
      "hops_median": float,
      "radio": {"tx_dbm": int, "adv_interval_ms": int, "ttl": int, "wifi_direct": bool}
    },
    "threshold": {"delivery": float, "p95_ms": float, "ttl_max": int},
    "model": str,
    "attrs": {"status": "red" | "amber" | "green"},
    "next_try": null | {"patch": [{"key": str, "to": any}, ...]}
  }

Usage:
  python mesh_receipt.py [--log logs/events.jsonl] [--out docs/receipt.latest.json]
"""

from __future__ import annotations

import json
import logging
import sys
import time
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from mesh_config import DEFAULT_THRESHOLDS, MODEL_TAG, MeshConfig, Thresholds, load_config
from mesh_events import DEFAULT_LOG_PATH, Event, load_events, synthesize_events
from mesh_health import (
    Advice,
    HealthStatus,
    advise,
    classify_health,
    format_number,
    round_half_up,
)
from mesh_window import WindowStats, reduce_window
from receipts import StopRule, emit_receipt, write_receipt_jsonl

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

CLAIM = "Mesh is live and healthy"
DEFAULT_OUT_PATH = "docs/receipt.latest.json"
RECEIPT_TYPE = "mesh_health"


# =============================================================================
# Receipt Builder
# =============================================================================

def _window_label(window_sec: int) -> str:
    """600 -> '10m', 90 -> '90s'."""
    if window_sec % 60 == 0:
        return f"{window_sec // 60}m"
    return f"{window_sec}s"


def build_receipt(
    stats: WindowStats,
    status: HealthStatus,
    advice: Advice,
    threshold: Thresholds = DEFAULT_THRESHOLDS,
    window_sec: int = 600,
    model: str = MODEL_TAG,
) -> Dict[str, Any]:
    """
    Assemble the receipt from already-decided parts.

    Telemetry is cast here; WindowStats keeps full precision. Latencies round
    halves up everywhere they are shown, so the evidence line, telem and
    summary_line agree.

    Args:
        stats: Reduced window statistics
        status: Verdict from classify_health()
        advice: Output of advise() for the same stats and status
        threshold: Thresholds used for the verdict
        window_sec: Window length the stats were reduced over
        model: Domain tag

    Returns:
        Receipt dict (JSON-serializable)
    """
    delivery = stats.delivery
    p50 = stats.p50
    p95 = stats.p95
    median_hops = stats.median_hops
    radio = stats.radio

    next_try: Optional[Dict[str, Any]] = None
    if advice.patch is not None:
        next_try = {"patch": [step.to_dict() for step in advice.patch]}

    return {
        "claim": CLAIM,
        "because": [
            f"delivery {delivery * 100:.1f}% in last {_window_label(window_sec)}",
            f"latency p50 {round_half_up(p50)}ms / p95 {round_half_up(p95)}ms",
            f"reach {stats.reach} peers · median hops {format_number(median_hops)}",
        ],
        "but": [advice.reason] if advice.reason else [],
        "so": advice.action,
        "telem": {
            "window_sec": window_sec,
            "delivery_success": round(delivery, 4),
            "latency_ms_p50": round_half_up(p50),
            "latency_ms_p95": round_half_up(p95),
            "reach_peers": stats.reach,
            "hops_median": median_hops,
            "radio": {
                "tx_dbm": int(radio.tx_dbm),
                "adv_interval_ms": int(radio.adv_interval_ms),
                "ttl": int(radio.ttl),
                "wifi_direct": bool(radio.wifi_direct),
            },
        },
        "threshold": threshold.to_dict(),
        "model": model,
        "attrs": {"status": status.value},
        "next_try": next_try,
    }


def summary_line(receipt: Dict[str, Any]) -> str:
    """One-line console summary: status=... delivery=...% p95=...ms peers=..."""
    telem = receipt["telem"]
    return (
        f"status={receipt['attrs']['status']} "
        f"delivery={telem['delivery_success'] * 100:.1f}% "
        f"p95={telem['latency_ms_p95']}ms "
        f"peers={telem['reach_peers']}"
    )


def run(
    events: Iterable[Event],
    now: float,
    config: Optional[MeshConfig] = None,
) -> Dict[str, Any]:
    """
    Full pipeline: reduce, classify, advise, assemble.

    Args:
        events: Events in arrival order
        now: Reference Unix time in seconds
        config: Thresholds, window and radio seed (defaults when None)

    Returns:
        Receipt dict
    """
    config = config or MeshConfig()
    stats = reduce_window(events, now, config.window_sec, radio_seed=config.radio)
    status = classify_health(stats, config.threshold)
    advice = advise(stats, status, config.threshold)
    logger.debug(
        f"window={config.window_sec}s sent={len(stats.sent_ids)} "
        f"delivered={len(stats.delivered_ids)} latencies={len(stats.latencies)} "
        f"status={status.value}"
    )
    return build_receipt(
        stats, status, advice,
        threshold=config.threshold,
        window_sec=config.window_sec,
        model=config.model,
    )


# =============================================================================
# Sink
# =============================================================================

def emit_mesh_receipt(receipt: Dict[str, Any], tenant_id: str = "default") -> Dict[str, Any]:
    """Wrap the receipt in the hashed envelope for ledger storage."""
    return emit_receipt(RECEIPT_TYPE, {"tenant_id": tenant_id, **receipt})


def write_receipt(receipt: Dict[str, Any], path: str = DEFAULT_OUT_PATH) -> Path:
    """
    Write the receipt as pretty JSON, creating parent directories.

    Returns:
        Path written
    """
    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(json.dumps(receipt, indent=2, ensure_ascii=False), encoding="utf-8")
    return out_path


def append_receipt_jsonl(
    receipt: Dict[str, Any],
    path: str,
    tenant_id: str = "default",
) -> Dict[str, Any]:
    """Append the enveloped receipt to a JSONL ledger. Returns the envelope."""
    envelope = emit_mesh_receipt(receipt, tenant_id)
    ledger = Path(path)
    ledger.parent.mkdir(parents=True, exist_ok=True)
    with open(ledger, "a") as fh:
        write_receipt_jsonl(envelope, fh)
    return envelope


# =============================================================================
# CLI
# =============================================================================

def main(argv: Optional[List[str]] = None) -> int:
    """
    Compute and write one mesh health receipt.

    Returns:
        Exit code (0 for success, 1 for error).
    """
    import argparse

    parser = argparse.ArgumentParser(
        description="Mesh health receipt from a rolling window of telemetry events",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python mesh_receipt.py
  python mesh_receipt.py --log logs/events.jsonl --window-sec 300
  python mesh_receipt.py --synthetic --seed 7 --out /tmp/receipt.json
        """,
    )
    parser.add_argument("--log", default=DEFAULT_LOG_PATH,
                        help=f"Events JSONL (default: {DEFAULT_LOG_PATH})")
    parser.add_argument("--out", default=DEFAULT_OUT_PATH,
                        help=f"Receipt JSON output (default: {DEFAULT_OUT_PATH})")
    parser.add_argument("--jsonl", default=None,
                        help="Also append the hashed receipt envelope to this JSONL ledger")
    parser.add_argument("--config", default=None,
                        help="JSON/YAML config with window_sec, threshold, radio")
    parser.add_argument("--window-sec", type=int, default=None,
                        help="Override the rolling window length")
    parser.add_argument("--now", type=int, default=None,
                        help="Reference Unix time (default: current time)")
    parser.add_argument("--seed", type=int, default=None,
                        help="Seed for the synthetic fallback sample")
    parser.add_argument("--synthetic", action="store_true",
                        help="Ignore the log and use a synthetic sample")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Debug logging")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )

    try:
        config = load_config(args.config)
        if args.window_sec is not None:
            config = replace(config, window_sec=args.window_sec)
        logger.debug(f"Effective config: {json.dumps(config.to_dict(), sort_keys=True)}")
    except (FileNotFoundError, StopRule) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    now = args.now if args.now is not None else int(time.time())

    events: List[Event] = [] if args.synthetic else load_events(args.log)
    if not events:
        if not args.synthetic:
            logger.warning(f"No events in {args.log}; using synthetic sample")
        events = synthesize_events(now, seed=args.seed)

    receipt = run(events, now, config)

    try:
        out_path = write_receipt(receipt, args.out)
        if args.jsonl:
            append_receipt_jsonl(receipt, args.jsonl, config.tenant_id)
    except OSError as e:
        print(f"Error writing receipt: {e}", file=sys.stderr)
        return 1

    print(f"[ok] wrote {out_path}")
    print(summary_line(receipt))
    return 0


if __name__ == "__main__":
    sys.exit(main())
