from dataclasses import dataclass
from enum import Enum


class MetricKind(str, Enum):
    CPU = "cpu"
    MEMORY = "memory"


@dataclass(frozen=True)
class MetricThreshold:
    # Fraction up to 1: 0.2 scales when the metric reaches 20%
    percent: float
    # Reduction applied across containers, "average" by default
    metric: str
    # Seconds the metric must stay above the threshold before scaling up
    scale_up_duration: float
    # Seconds the metric must stay below the threshold before scaling down
    scale_down_duration: float

    @property
    def trigger_percent(self) -> float:
        return self.percent * 100.0

    @property
    def retention(self) -> float:
        return max(self.scale_up_duration, self.scale_down_duration)
