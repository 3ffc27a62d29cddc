"""
mesh_config.py - Mesh Health Configuration

Thresholds, window length and the radio seed consumed by the health pipeline.
Configs are frozen after load; nothing in the pipeline mutates them.

File format (JSON or YAML):
  {
    "window_sec": 600,
    "threshold": {"delivery": 0.95, "p95_ms": 2000, "ttl_max": 4},
    "radio": {"tx_dbm": 0, "adv_interval_ms": 600, "ttl": 3, "wifi_direct": false},
    "model": "mesh/bluetooth-wifi-store-and-forward",
    "tenant_id": "default"
  }

Every key is optional; missing keys take the defaults below.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from jsonschema import Draft202012Validator

from receipts import StopRule


__all__ = [
    'RadioState',
    'Thresholds',
    'MeshConfig',
    'DEFAULT_RADIO',
    'DEFAULT_THRESHOLDS',
    'DEFAULT_WINDOW_SEC',
    'MODEL_TAG',
    'load_config',
]


# =============================================================================
# Constants
# =============================================================================

DEFAULT_WINDOW_SEC = 600                          # 10 min rolling
MODEL_TAG = "mesh/bluetooth-wifi-store-and-forward"


# =============================================================================
# JSON Schema Definition (Draft 2020-12)
# =============================================================================

_JSON_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "MeshConfig",
    "description": "Mesh health receipt configuration",
    "type": "object",
    "properties": {
        "window_sec": {
            "type": "integer",
            "description": "Rolling window length in seconds",
            "minimum": 1,
        },
        "threshold": {
            "type": "object",
            "properties": {
                "delivery": {"type": "number", "minimum": 0.0, "maximum": 1.0},
                "p95_ms": {"type": "number", "exclusiveMinimum": 0},
                "ttl_max": {"type": "integer", "minimum": 1},
            },
            "additionalProperties": False,
        },
        "radio": {
            "type": "object",
            "properties": {
                "tx_dbm": {"type": "number"},
                "adv_interval_ms": {"type": "number", "minimum": 0},
                "ttl": {"type": "integer", "minimum": 0},
                "wifi_direct": {"type": "boolean"},
            },
            "additionalProperties": False,
        },
        "model": {"type": "string", "minLength": 1},
        "tenant_id": {"type": "string", "minLength": 1},
    },
    "additionalProperties": False,
}

Draft202012Validator.check_schema(_JSON_SCHEMA)
_VALIDATOR = Draft202012Validator(_JSON_SCHEMA)


# =============================================================================
# Dataclasses
# =============================================================================

@dataclass(frozen=True)
class RadioState:
    """
    Snapshot of the link parameters the advisor can move.

    Attributes:
        tx_dbm: Transmit power
        adv_interval_ms: Advertisement interval
        ttl: Hop time-to-live
        wifi_direct: Boosted Wi-Fi Direct link enabled
    """
    tx_dbm: float = 0
    adv_interval_ms: float = 600
    ttl: int = 3
    wifi_direct: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Thresholds:
    """
    Fixed health thresholds.

    Attributes:
        delivery: Minimum delivery ratio for green (0.0-1.0)
        p95_ms: Maximum p95 latency for green
        ttl_max: Ceiling for suggested TTL increases
    """
    delivery: float = 0.95
    p95_ms: float = 2000
    ttl_max: int = 4

    def __post_init__(self) -> None:
        if not 0.0 <= self.delivery <= 1.0:
            raise StopRule(f"threshold.delivery {self.delivery} out of range [0.0, 1.0]")
        if self.p95_ms <= 0:
            raise StopRule(f"threshold.p95_ms {self.p95_ms} must be > 0")
        if self.ttl_max < 1:
            raise StopRule(f"threshold.ttl_max {self.ttl_max} must be >= 1")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


DEFAULT_RADIO = RadioState()
DEFAULT_THRESHOLDS = Thresholds()


@dataclass(frozen=True)
class MeshConfig:
    """
    Everything one receipt run needs besides the events.

    Attributes:
        window_sec: Trailing window length in seconds
        threshold: Health thresholds
        radio: Seed for the radio fold (used until a radio event overrides it)
        model: Domain tag stamped on the receipt
        tenant_id: Tenant recorded on the receipt envelope
    """
    window_sec: int = DEFAULT_WINDOW_SEC
    threshold: Thresholds = field(default_factory=Thresholds)
    radio: RadioState = field(default_factory=RadioState)
    model: str = MODEL_TAG
    tenant_id: str = "default"

    def __post_init__(self) -> None:
        if self.window_sec <= 0:
            raise StopRule(f"window_sec {self.window_sec} must be > 0")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "window_sec": self.window_sec,
            "threshold": self.threshold.to_dict(),
            "radio": self.radio.to_dict(),
            "model": self.model,
            "tenant_id": self.tenant_id,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> MeshConfig:
        """
        Build a config from a plain dict, validating it first.

        Raises:
            StopRule: If the dict violates the config schema
        """
        data = dict(data or {})
        errors = sorted(_VALIDATOR.iter_errors(data), key=lambda e: list(e.path))
        if errors:
            details = "; ".join(
                f"{'.'.join(str(p) for p in err.path) or '<root>'}: {err.message}"
                for err in errors
            )
            raise StopRule(f"Invalid mesh config: {details}")

        return cls(
            window_sec=data.get("window_sec", DEFAULT_WINDOW_SEC),
            threshold=Thresholds(**data.get("threshold", {})),
            radio=RadioState(**data.get("radio", {})),
            model=data.get("model", MODEL_TAG),
            tenant_id=data.get("tenant_id", "default"),
        )


# =============================================================================
# Loading
# =============================================================================

def load_config(path: Optional[str] = None) -> MeshConfig:
    """
    Load config from a JSON/YAML file, or return defaults when path is None.

    Args:
        path: Path to config file (.json, .yaml, .yml)

    Returns:
        Validated, frozen MeshConfig

    Raises:
        FileNotFoundError: If path doesn't exist
        StopRule: If the file contents are invalid
    """
    if path is None:
        return MeshConfig()

    path_obj = Path(path)
    if not path_obj.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    content = path_obj.read_text()

    if path_obj.suffix in ('.yaml', '.yml'):
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise StopRule(f"Config file {path} is not valid YAML: {e}") from e
    else:
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise StopRule(f"Config file {path} is not valid JSON: {e}") from e

    if data is not None and not isinstance(data, dict):
        raise StopRule(f"Config file {path} must hold a mapping, got {type(data).__name__}")

    return MeshConfig.from_dict(data)
