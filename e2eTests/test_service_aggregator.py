import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Set

import pytest

from replica_scaler.core.container_sampler import ContainerSampler
from replica_scaler.core.decision_engine import DecisionEngine
from replica_scaler.core.service_aggregator import ServiceAggregator
from replica_scaler.domain.errors import (
    ContainerSampleError,
    DiscoveryFailure,
    NoContainersFound,
    PartialSampleFailure,
)
from replica_scaler.domain.metricThreshold import MetricKind, MetricThreshold
from replica_scaler.domain.orchestrator import ContainerDiscovery, StatsSource
from replica_scaler.domain.rawSample import ContainerHandle, RawSample
from replica_scaler.domain.serviceConfig import ServiceConfig

SAMPLE_TIMEOUT = 0.3


class FakeDiscovery(ContainerDiscovery):
    def __init__(self, containers: List[ContainerHandle]):
        self.containers = containers

    def list_service_containers(self, service: ServiceConfig) -> List[ContainerHandle]:
        return list(self.containers)

    def current_replicas(self, service: ServiceConfig) -> int:
        return len(self.containers)


class FakeStats(StatsSource):
    """Each snapshot of a container advances its counters so the next pair reads ``percent``."""

    def __init__(self, percents: Dict[str, float]):
        self.percents = percents
        self.ticks: Dict[str, int] = {cid: 0 for cid in percents}
        self.stall: Set[str] = set()
        self.fail: Set[str] = set()
        self.release = threading.Event()

    def snapshot(self, container: ContainerHandle) -> RawSample:
        if container.id in self.stall:
            self.release.wait(5)
        if container.id in self.fail:
            raise ContainerSampleError(container.id, "connection refused")

        tick = self.ticks[container.id]
        self.ticks[container.id] = tick + 1
        return RawSample(
            cpu_usage=tick * self.percents[container.id] * 10,
            system_usage=tick * 1000,
            online_cpus=1,
            memory_usage=self.percents[container.id],
            memory_limit=100,
        )


def build_service(metric: str = "average") -> ServiceConfig:
    threshold = MetricThreshold(percent=0.5, metric=metric, scale_up_duration=10, scale_down_duration=10)
    return ServiceConfig(name="api", max_replicas=5, thresholds={MetricKind.CPU: threshold})


def handles(*ids: str) -> List[ContainerHandle]:
    return [ContainerHandle(id=cid, service="api") for cid in ids]


@pytest.fixture
def executor():
    pool = ThreadPoolExecutor(max_workers=8)
    yield pool
    pool.shutdown(wait=False, cancel_futures=True)


def make(containers, stats, executor, metric="average"):
    service = build_service(metric)
    aggregator = ServiceAggregator(
        FakeDiscovery(containers), ContainerSampler(stats), executor, SAMPLE_TIMEOUT
    )
    return service, DecisionEngine(service), aggregator


def test_average_over_all_containers(executor):
    stats = FakeStats({"a": 10, "b": 20, "c": 60})
    service, engine, aggregator = make(handles("a", "b", "c"), stats, executor)

    first = aggregator.aggregate(service, engine, now=0)
    assert first.samples == {}  # cold start: no previous counters yet
    assert len(engine.windows[MetricKind.CPU]) == 0

    second = aggregator.aggregate(service, engine, now=5)
    assert second.samples[MetricKind.CPU].percent == pytest.approx(30.0)
    assert second.partial_failure is None
    assert engine.windows[MetricKind.CPU].latest.timestamp == 5


@pytest.mark.parametrize("metric, expected", [("median", 20.0), ("max", 60.0)])
def test_other_reductions(executor, metric: str, expected: float):
    stats = FakeStats({"a": 10, "b": 20, "c": 60})
    service, engine, aggregator = make(handles("a", "b", "c"), stats, executor, metric)
    aggregator.aggregate(service, engine, now=0)
    result = aggregator.aggregate(service, engine, now=5)
    assert result.samples[MetricKind.CPU].percent == pytest.approx(expected)


def test_slow_container_is_left_out_of_the_average(executor):
    stats = FakeStats({"a": 10, "b": 20, "c": 30, "d": 90})
    service, engine, aggregator = make(handles("a", "b", "c", "d"), stats, executor)
    aggregator.aggregate(service, engine, now=0)

    stats.stall.add("d")
    try:
        result = aggregator.aggregate(service, engine, now=5)
    finally:
        stats.release.set()

    assert result.samples[MetricKind.CPU].percent == pytest.approx(20.0)
    assert isinstance(result.partial_failure, PartialSampleFailure)
    assert result.partial_failure.failed == ("d",)
    assert result.partial_failure.total == 4


def test_failed_container_is_left_out_of_the_average(executor):
    stats = FakeStats({"a": 10, "b": 40})
    service, engine, aggregator = make(handles("a", "b"), stats, executor)
    aggregator.aggregate(service, engine, now=0)

    stats.fail.add("b")
    result = aggregator.aggregate(service, engine, now=5)
    assert result.samples[MetricKind.CPU].percent == pytest.approx(10.0)
    assert result.partial_failure.failed == ("b",)


def test_single_container_timing_out_fails_the_aggregation(executor):
    stats = FakeStats({"a": 10})
    service, engine, aggregator = make(handles("a"), stats, executor)
    stats.stall.add("a")
    try:
        with pytest.raises(DiscoveryFailure):
            aggregator.aggregate(service, engine, now=0)
    finally:
        stats.release.set()


def test_no_containers(executor):
    service, engine, aggregator = make([], FakeStats({}), executor)
    with pytest.raises(NoContainersFound):
        aggregator.aggregate(service, engine, now=0)


def test_new_container_is_cold_and_left_out(executor):
    stats = FakeStats({"a": 10, "b": 30, "c": 90})
    discovery_containers = handles("a", "b")
    service, engine, aggregator = make(discovery_containers, stats, executor)
    aggregator.aggregate(service, engine, now=0)

    discovery_containers.append(ContainerHandle(id="c", service="api"))
    aggregator.discovery.containers = discovery_containers
    result = aggregator.aggregate(service, engine, now=5)
    assert result.container_count == 3
    assert result.samples[MetricKind.CPU].percent == pytest.approx(20.0)
    assert result.partial_failure is None


def test_departed_containers_are_forgotten(executor):
    stats = FakeStats({"a": 10, "b": 30})
    service, engine, aggregator = make(handles("a", "b"), stats, executor)
    aggregator.aggregate(service, engine, now=0)

    aggregator.discovery.containers = handles("a")
    aggregator.aggregate(service, engine, now=5)
    assert set(aggregator.sampler._previous) == {"a"}
