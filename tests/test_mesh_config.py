"""
Tests for mesh_config.py - Thresholds, window and radio seed configuration
"""

import json

import pytest

from mesh_config import (
    DEFAULT_RADIO,
    DEFAULT_THRESHOLDS,
    DEFAULT_WINDOW_SEC,
    MODEL_TAG,
    MeshConfig,
    RadioState,
    Thresholds,
    load_config,
)
from receipts import StopRule


class TestDefaults:

    def test_thresholds(self):
        assert DEFAULT_THRESHOLDS.to_dict() == {"delivery": 0.95, "p95_ms": 2000, "ttl_max": 4}

    def test_radio_seed(self):
        assert DEFAULT_RADIO.to_dict() == {
            "tx_dbm": 0, "adv_interval_ms": 600, "ttl": 3, "wifi_direct": False,
        }

    def test_load_without_path(self):
        config = load_config()
        assert config == MeshConfig()
        assert config.window_sec == DEFAULT_WINDOW_SEC == 600
        assert config.model == MODEL_TAG

    def test_frozen(self):
        with pytest.raises(Exception):
            DEFAULT_THRESHOLDS.delivery = 0.5


class TestValidation:

    @pytest.mark.parametrize("kwargs", [
        {"delivery": 1.2},
        {"delivery": -0.1},
        {"p95_ms": 0},
        {"ttl_max": 0},
    ])
    def test_thresholds_out_of_range(self, kwargs):
        with pytest.raises(StopRule):
            Thresholds(**kwargs)

    def test_window_must_be_positive(self):
        with pytest.raises(StopRule):
            MeshConfig(window_sec=0)

    def test_from_dict_partial(self):
        config = MeshConfig.from_dict({"threshold": {"p95_ms": 1500}, "radio": {"ttl": 2}})
        assert config.threshold == Thresholds(delivery=0.95, p95_ms=1500, ttl_max=4)
        assert config.radio == RadioState(ttl=2)
        assert config.window_sec == 600

    def test_from_dict_none(self):
        assert MeshConfig.from_dict(None) == MeshConfig()

    @pytest.mark.parametrize("data", [
        {"window_sec": "ten minutes"},
        {"window_sec": 0},
        {"threshold": {"delivery": 1.5}},
        {"threshold": {"p95": 2000}},
        {"radio": {"wifi_direct": "on"}},
        {"surprise": True},
    ])
    def test_from_dict_rejects_invalid(self, data):
        with pytest.raises(StopRule, match="Invalid mesh config"):
            MeshConfig.from_dict(data)

    def test_to_dict_round_trip(self):
        config = MeshConfig(window_sec=300, threshold=Thresholds(delivery=0.9), tenant_id="lab")
        assert MeshConfig.from_dict(config.to_dict()) == config


class TestLoadConfig:

    def test_json(self, tmp_path):
        path = tmp_path / "mesh.json"
        path.write_text(json.dumps({"window_sec": 300, "threshold": {"delivery": 0.9}}))
        config = load_config(str(path))
        assert config.window_sec == 300
        assert config.threshold.delivery == 0.9

    def test_yaml(self, tmp_path):
        path = tmp_path / "mesh.yaml"
        path.write_text(
            "window_sec: 120\n"
            "threshold:\n"
            "  p95_ms: 1800\n"
            "  ttl_max: 6\n"
            "radio:\n"
            "  wifi_direct: true\n"
        )
        config = load_config(str(path))
        assert config.window_sec == 120
        assert config.threshold == Thresholds(p95_ms=1800, ttl_max=6)
        assert config.radio.wifi_direct is True

    def test_empty_yaml_is_defaults(self, tmp_path):
        path = tmp_path / "mesh.yml"
        path.write_text("")
        assert load_config(str(path)) == MeshConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "nope.json"))

    def test_bad_json(self, tmp_path):
        path = tmp_path / "mesh.json"
        path.write_text("{window_sec: 1")
        with pytest.raises(StopRule):
            load_config(str(path))

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "mesh.json"
        path.write_text("[1, 2, 3]")
        with pytest.raises(StopRule):
            load_config(str(path))
