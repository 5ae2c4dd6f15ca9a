import copy
import json

import pytest

from replica_scaler.domain.config_loader import load_config, parse_config, parse_duration
from replica_scaler.domain.errors import ConfigurationError
from replica_scaler.domain.metricThreshold import MetricKind

CONFIG = {
    "interval": "5s",
    "exclusion_cooldown": "2m",
    "services": [
        {
            "name": "traefik",
            "stack_name": "olc",
            "enabled": True,
            "max_replicas": 3,
            "thresholds": {
                "cpu": {"percent": 0.2, "metric": "average",
                        "scale_up_duration": "10s", "scale_down_duration": "1m30s"},
                "memory": {"percent": 0.8, "scale_up_duration": "30s", "scale_down_duration": "30s"},
            },
        },
        {
            "name": "grafana",
            "enabled": False,
            "max_replicas": 2,
        },
    ],
}


def with_threshold(**overrides) -> dict:
    cfg = copy.deepcopy(CONFIG)
    cfg["services"][0]["thresholds"]["cpu"].update(overrides)
    return cfg


@pytest.mark.parametrize("raw, seconds", [
    ("10s", 10.0), ("1m30s", 90.0), ("500ms", 0.5), ("1h", 3600.0), ("1.5s", 1.5),
])
def test_parse_duration(raw: str, seconds: float):
    assert parse_duration(raw) == pytest.approx(seconds)


@pytest.mark.parametrize("raw", ["", "10", "ten seconds", "10x", "s10", "10s garbage", 10])
def test_parse_duration_rejects_garbage(raw):
    with pytest.raises(ConfigurationError):
        parse_duration(raw)


def test_parse_config():
    config = parse_config(CONFIG)

    assert config.interval == 5.0
    assert config.exclusion_cooldown == 120.0
    assert config.failure_threshold == 3
    assert [s.name for s in config.enabled_services] == ["traefik"]

    traefik = config.services[0]
    assert traefik.qualified_name == "olc_traefik"
    assert traefik.min_replicas == 1
    assert traefik.scale_step == 1
    cpu = traefik.thresholds[MetricKind.CPU]
    assert cpu.trigger_percent == pytest.approx(20.0)
    assert cpu.scale_down_duration == 90.0
    assert cpu.retention == 90.0
    assert traefik.thresholds[MetricKind.MEMORY].metric == "average"


@pytest.mark.parametrize("overrides", [
    {"scale_up_duration": "5s"},
    {"scale_down_duration": "soon"},
    {"metric": "p99"},
    {"percent": 0},
    {"percent": 1.5},
    {"percent": "high"},
])
def test_invalid_thresholds_fail_at_load_time(overrides):
    with pytest.raises(ConfigurationError):
        parse_config(with_threshold(**overrides))


def test_unknown_metric_kind():
    cfg = copy.deepcopy(CONFIG)
    cfg["services"][0]["thresholds"]["disk"] = {"percent": 0.5}
    with pytest.raises(ConfigurationError, match="disk"):
        parse_config(cfg)


@pytest.mark.parametrize("overrides", [
    {"max_replicas": 0},
    {"min_replicas": 0},
    {"min_replicas": 4},
    {"scale_step": 0},
    {"thresholds": {}},
])
def test_invalid_service_settings(overrides):
    cfg = copy.deepcopy(CONFIG)
    cfg["services"][0].update(overrides)
    with pytest.raises(ConfigurationError):
        parse_config(cfg)


def test_missing_max_replicas():
    cfg = copy.deepcopy(CONFIG)
    del cfg["services"][0]["max_replicas"]
    with pytest.raises(ConfigurationError):
        parse_config(cfg)


def test_duplicate_services():
    cfg = copy.deepcopy(CONFIG)
    cfg["services"].append(copy.deepcopy(cfg["services"][0]))
    with pytest.raises(ConfigurationError, match="olc_traefik"):
        parse_config(cfg)


@pytest.mark.parametrize("enabled", ["false", "no", 0, None])
def test_enabled_must_be_a_boolean(enabled):
    cfg = copy.deepcopy(CONFIG)
    cfg["services"][1]["enabled"] = enabled
    with pytest.raises(ConfigurationError, match=r"services\[grafana\]\.enabled"):
        parse_config(cfg)


@pytest.mark.parametrize("key", ["failure_threshold", "max_workers"])
@pytest.mark.parametrize("value", ["three", None, [3], True])
def test_invalid_global_counts_name_the_field(key: str, value):
    cfg = copy.deepcopy(CONFIG)
    cfg[key] = value
    with pytest.raises(ConfigurationError, match=key):
        parse_config(cfg)


def test_load_config_from_file(tmp_path):
    path = tmp_path / "autoscaler.json"
    path.write_text(json.dumps(CONFIG))
    config = load_config(str(path))
    assert len(config.services) == 2
