import json
import re
from typing import Any, Dict, Mapping

from replica_scaler.domain.errors import ConfigurationError
from replica_scaler.domain.metricThreshold import MetricKind, MetricThreshold
from replica_scaler.domain.serviceConfig import AutoscalerConfig, ServiceConfig

MIN_SCALE_DURATION_SEC = 10.0
REDUCTIONS = ("average", "median", "max")

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_UNIT_SECONDS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


def parse_duration(value: str) -> float:
    """
    Parses a duration string such as "10s", "1m30s" or "500ms" into seconds.
    """
    if not isinstance(value, str) or not value:
        raise ConfigurationError(f"Invalid duration: {value!r}")

    pos = 0
    total = 0.0
    for match in _DURATION_PART.finditer(value):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()

    if pos != len(value) or pos == 0:
        raise ConfigurationError(f"Invalid duration: {value!r}")
    return total


def _integer(value: Any, where: str) -> int:
    # bool is an int subclass, true/false are no counts
    if isinstance(value, bool):
        raise ConfigurationError(f"{where} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{where} must be an integer, got {value!r}") from exc


def _load_threshold(service: str, kind: str, data: Mapping[str, Any]) -> MetricThreshold:
    where = f"services[{service}].thresholds.{kind}"

    try:
        percent = float(data["percent"])
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigurationError(f"{where}.percent is missing or not a number") from exc
    if not 0.0 < percent <= 1.0:
        raise ConfigurationError(f"{where}.percent must be in (0, 1], got {percent}")

    reduction = data.get("metric", "average")
    if reduction not in REDUCTIONS:
        raise ConfigurationError(f"{where}.metric: unknown reduction '{reduction}'")

    durations: Dict[str, float] = {}
    for key in ("scale_up_duration", "scale_down_duration"):
        raw = data.get(key, "10s")
        try:
            seconds = parse_duration(raw)
        except ConfigurationError as exc:
            raise ConfigurationError(f"{where}.{key}: {exc}") from exc
        if seconds < MIN_SCALE_DURATION_SEC:
            raise ConfigurationError(
                f"{where}.{key} must be at least {MIN_SCALE_DURATION_SEC:g}s, got {raw}"
            )
        durations[key] = seconds

    return MetricThreshold(percent=percent, metric=reduction, **durations)


def _load_service(data: Mapping[str, Any]) -> ServiceConfig:
    name = data.get("name")
    if not name:
        raise ConfigurationError("Every service needs a name")

    raw_thresholds = data.get("thresholds") or {}
    thresholds: Dict[MetricKind, MetricThreshold] = {}
    for kind, threshold in raw_thresholds.items():
        try:
            metric_kind = MetricKind(kind)
        except ValueError as exc:
            raise ConfigurationError(f"services[{name}].thresholds: unknown metric '{kind}'") from exc
        thresholds[metric_kind] = _load_threshold(name, kind, threshold)

    enabled = data.get("enabled", True)
    if not isinstance(enabled, bool):
        raise ConfigurationError(f"services[{name}].enabled must be true or false, got {enabled!r}")
    if enabled and not thresholds:
        raise ConfigurationError(f"services[{name}] is enabled but defines no thresholds")

    try:
        service = ServiceConfig(
            name=name,
            stack_name=data.get("stack_name") or None,
            enabled=enabled,
            max_replicas=int(data["max_replicas"]),
            min_replicas=int(data.get("min_replicas", 1)),
            scale_step=int(data.get("scale_step", 1)),
            thresholds=thresholds,
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigurationError(f"services[{name}]: invalid replica settings ({exc})") from exc

    if service.min_replicas < 1:
        raise ConfigurationError(f"services[{name}].min_replicas must be at least 1")
    if service.max_replicas < service.min_replicas:
        raise ConfigurationError(f"services[{name}].max_replicas must be >= min_replicas")
    if service.scale_step < 1:
        raise ConfigurationError(f"services[{name}].scale_step must be at least 1")
    return service


def parse_config(data: Mapping[str, Any]) -> AutoscalerConfig:
    services = tuple(_load_service(s) for s in data.get("services", []))

    names = [s.qualified_name for s in services]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ConfigurationError(f"Duplicate services: {', '.join(duplicates)}")

    config = AutoscalerConfig(
        interval=parse_duration(data.get("interval", "5s")),
        services=services,
        sample_timeout=parse_duration(data.get("sample_timeout", "3s")),
        exclusion_cooldown=parse_duration(data.get("exclusion_cooldown", "1m")),
        failure_threshold=_integer(data.get("failure_threshold", 3), "failure_threshold"),
        max_workers=_integer(data.get("max_workers", 32), "max_workers"),
    )
    if config.interval <= 0 or config.sample_timeout <= 0:
        raise ConfigurationError("interval and sample_timeout must be positive")
    if config.failure_threshold < 1:
        raise ConfigurationError("failure_threshold must be at least 1")
    if config.max_workers < 1:
        raise ConfigurationError("max_workers must be at least 1")
    return config


def load_config(path: str) -> AutoscalerConfig:
    with open(path, 'r') as f:
        data = json.load(f)
    return parse_config(data)
