"""
receipts.py - Mesh Receipt Envelope

Wraps a mesh health receipt before it goes to a JSONL ledger:

  {"receipt_type": "mesh_health", "ts": ISO8601, "tenant_id": str,
   "payload_hash": "sha256_hex:blake3_hex", ...receipt fields}

The hash covers the receipt payload only, so a reader can recompute it from
the ledger line. Payloads without a red/amber/green verdict are refused.
"""

import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Dict, Union

import blake3

__all__ = [
    "RECEIPT_STATUSES",
    "dual_hash",
    "emit_receipt",
    "write_receipt_jsonl",
    "StopRule",
]

RECEIPT_STATUSES = ("red", "amber", "green")


class StopRule(Exception):
    """Raised when a mesh config or receipt is unusable. Never catch silently."""


# =============================================================================
# Hashing
# =============================================================================

def dual_hash(data: Union[bytes, str]) -> str:
    """SHA256 and BLAKE3 of the same bytes, as "sha256_hex:blake3_hex"."""
    if isinstance(data, str):
        data = data.encode()
    return f"{hashlib.sha256(data).hexdigest()}:{blake3.blake3(data).hexdigest()}"


# =============================================================================
# Envelope
# =============================================================================

def _receipt_status(data: Dict[str, Any]) -> str:
    attrs = data.get("attrs")
    status = attrs.get("status") if isinstance(attrs, dict) else None
    if status not in RECEIPT_STATUSES:
        raise StopRule(f"receipt payload needs attrs.status in {RECEIPT_STATUSES}, got {status!r}")
    return status


def emit_receipt(receipt_type: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Wrap a mesh receipt payload in the hashed envelope.

    Two runs over the same window hash identically even though their ``ts``
    differs.

    Args:
        receipt_type: Envelope type tag, e.g. "mesh_health"
        data: Receipt payload; must carry attrs.status, may carry tenant_id

    Returns:
        dict: Envelope fields followed by the payload fields

    Raises:
        StopRule: attrs.status missing or not red/amber/green
    """
    _receipt_status(data)
    return {
        "receipt_type": receipt_type,
        "ts": datetime.now(timezone.utc).isoformat(),
        "tenant_id": data.get("tenant_id", "default"),
        "payload_hash": dual_hash(json.dumps(data, sort_keys=True)),
        **data,
    }


def write_receipt_jsonl(receipt: Dict[str, Any], fh) -> None:
    """Append the envelope to an open ledger as one compact JSON line."""
    fh.write(json.dumps(receipt, separators=(",", ":")) + "\n")
