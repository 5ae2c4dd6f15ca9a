import logging
from concurrent.futures import Executor, Future, wait
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from replica_scaler.core.container_sampler import ContainerReading, ContainerSampler
from replica_scaler.core.decision_engine import DecisionEngine
from replica_scaler.domain.errors import DiscoveryFailure, NoContainersFound, PartialSampleFailure
from replica_scaler.domain.metricThreshold import MetricKind
from replica_scaler.domain.orchestrator import ContainerDiscovery
from replica_scaler.domain.rawSample import ContainerHandle
from replica_scaler.domain.serviceConfig import ServiceConfig
from replica_scaler.domain.utilizationSample import UtilizationSample

logger = logging.getLogger(__name__)

REDUCTIONS: Dict[str, Callable[[Sequence[float]], float]] = {
    "average": lambda values: float(np.mean(values)),
    "median": lambda values: float(np.median(values)),
    "max": lambda values: float(np.max(values)),
}


@dataclass
class AggregationResult:
    service: str
    container_count: int
    samples: Dict[MetricKind, UtilizationSample] = field(default_factory=dict)
    partial_failure: Optional[PartialSampleFailure] = None


class ServiceAggregator:
    def __init__(
            self,
            discovery: ContainerDiscovery,
            sampler: ContainerSampler,
            executor: Executor,
            sample_timeout: float = 3.0,
    ) -> None:
        self.discovery = discovery
        self.sampler = sampler
        self.executor = executor
        self.sample_timeout = sample_timeout

    def _collect(self, service: ServiceConfig, containers: List[ContainerHandle]):
        futures: Dict[Future, ContainerHandle] = {
            self.executor.submit(self.sampler.sample, c): c for c in containers
        }
        done, not_done = wait(futures, timeout=self.sample_timeout)

        readings: List[ContainerReading] = []
        failed: List[str] = []
        for future in not_done:
            future.cancel()
            container = futures[future]
            logger.warning(f"Sampling container {container.id} of '{service.name}' timed out")
            failed.append(container.id)

        for future in done:
            container = futures[future]
            exc = future.exception()
            if exc is not None:
                logger.warning(f"Sampling container {container.id} of '{service.name}' failed: {exc}")
                failed.append(container.id)
                continue
            readings.append(future.result())

        return readings, failed

    def aggregate(self, service: ServiceConfig, engine: DecisionEngine, now: float) -> AggregationResult:
        """
        Samples every container of ``service`` and appends one reduced sample per
        configured metric to the engine's windows.

        Raises NoContainersFound when the service has no containers and
        DiscoveryFailure when none of them could be sampled.
        """
        containers = self.discovery.list_service_containers(service)
        if not containers:
            raise NoContainersFound(service.qualified_name)

        readings, failed = self._collect(service, containers)
        self.sampler.forget_except(c.id for c in containers)

        if not readings:
            raise DiscoveryFailure(
                service.qualified_name, f"all {len(containers)} containers unreachable"
            )

        result = AggregationResult(service=service.name, container_count=len(containers))
        if failed:
            result.partial_failure = PartialSampleFailure(service.name, failed, len(containers))
            logger.warning(str(result.partial_failure))

        for kind, threshold in service.thresholds.items():
            values = [r.percents[kind] for r in readings if kind in r.percents]
            if not values:
                logger.debug(f"No {kind.value} values for '{service.name}' this tick (cold start)")
                continue

            sample = UtilizationSample(
                service=service.name,
                metric=kind,
                percent=REDUCTIONS[threshold.metric](values),
                timestamp=now,
            )
            engine.record(sample)
            result.samples[kind] = sample

        return result
