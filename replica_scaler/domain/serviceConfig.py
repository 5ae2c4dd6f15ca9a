from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

from replica_scaler.domain.metricThreshold import MetricKind, MetricThreshold


@dataclass(frozen=True)
class ServiceConfig:
    name: str
    max_replicas: int
    thresholds: Mapping[MetricKind, MetricThreshold]
    stack_name: Optional[str] = None
    enabled: bool = True
    min_replicas: int = 1
    scale_step: int = 1

    @property
    def qualified_name(self) -> str:
        """Name the orchestrator knows the service by (``<stack>_<name>`` inside a stack)."""
        if self.stack_name:
            return f"{self.stack_name}_{self.name}"
        return self.name


@dataclass(frozen=True)
class AutoscalerConfig:
    interval: float
    services: Tuple[ServiceConfig, ...] = field(default_factory=tuple)
    sample_timeout: float = 3.0
    exclusion_cooldown: float = 60.0
    failure_threshold: int = 3
    max_workers: int = 32

    @property
    def enabled_services(self) -> Tuple[ServiceConfig, ...]:
        return tuple(s for s in self.services if s.enabled)


"""
{
  "interval": "5s",
  "services": [
    {"name": "traefik", "stack_name": "olc", "enabled": true, "max_replicas": 3,
     "thresholds": {"cpu": {"percent": 0.2, "metric": "average",
                            "scale_up_duration": "10s", "scale_down_duration": "10s"}}}
  ]
}
"""
