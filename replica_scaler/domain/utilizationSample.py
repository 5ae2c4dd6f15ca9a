from dataclasses import dataclass

from replica_scaler.domain.metricThreshold import MetricKind


@dataclass(frozen=True)
class UtilizationSample:
    service: str
    metric: MetricKind
    percent: float
    timestamp: float
