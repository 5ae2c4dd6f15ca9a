import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

from replica_scaler.core.utilization import cpu_percent, memory_percent
from replica_scaler.domain.metricThreshold import MetricKind
from replica_scaler.domain.orchestrator import StatsSource
from replica_scaler.domain.rawSample import ContainerHandle, RawSample

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContainerReading:
    container_id: str
    percents: Dict[MetricKind, float] = field(default_factory=dict)
    cold_start: bool = False


class ContainerSampler:
    """
    Takes one snapshot per container and pairs it with the previous one.

    Every call is independent, so a failing container only raises for itself.
    When the reference counter has not moved since the previous snapshot (the
    source has not scraped again), the last CPU percentage is carried forward
    and the older snapshot is kept for the next pair.
    """

    def __init__(self, stats: StatsSource) -> None:
        self.stats = stats
        self._previous: Dict[str, RawSample] = {}
        self._last_cpu: Dict[str, float] = {}
        self._lock = threading.Lock()

    def sample(self, container: ContainerHandle) -> ContainerReading:
        current = self.stats.snapshot(container)
        percents = {MetricKind.MEMORY: memory_percent(current)}

        with self._lock:
            previous: Optional[RawSample] = self._previous.get(container.id)
            if previous is not None and current.system_usage == previous.system_usage:
                last = self._last_cpu.get(container.id)
                if last is None:
                    return ContainerReading(container.id, percents, cold_start=True)
                percents[MetricKind.CPU] = last
                return ContainerReading(container.id, percents)

            self._previous[container.id] = current
            if previous is None:
                logger.debug(f"Cold start for container {container.id} of '{container.service}'")
                return ContainerReading(container.id, percents, cold_start=True)

            percents[MetricKind.CPU] = self._last_cpu[container.id] = cpu_percent(previous, current)
        return ContainerReading(container.id, percents)

    def forget_except(self, live_ids: Iterable[str]) -> None:
        """Drops snapshots of containers that are no longer part of the service."""
        live = set(live_ids)
        with self._lock:
            for container_id in list(self._previous):
                if container_id not in live:
                    del self._previous[container_id]
                    self._last_cpu.pop(container_id, None)
