import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from replica_scaler.core.container_sampler import ContainerSampler
from replica_scaler.core.decision_engine import DecisionEngine
from replica_scaler.core.service_aggregator import ServiceAggregator
from replica_scaler.domain.errors import DiscoveryFailure
from replica_scaler.domain.orchestrator import ContainerDiscovery, StatsSource
from replica_scaler.domain.runtimeState import ServiceRuntimeState
from replica_scaler.domain.scalingIntent import ScalingIntent
from replica_scaler.domain.serviceConfig import AutoscalerConfig, ServiceConfig

logger = logging.getLogger(__name__)

# a gap wider than this many intervals breaks the continuity of a window
MAX_GAP_INTERVALS = 1.5


@dataclass
class ServiceRuntime:
    service: ServiceConfig
    state: ServiceRuntimeState
    engine: DecisionEngine
    aggregator: ServiceAggregator
    container_pool: ThreadPoolExecutor
    in_flight: Optional[Future] = None


class CycleScheduler:
    """
    Runs one evaluation per enabled service every ``config.interval`` seconds.

    Services are evaluated in parallel and never wait on each other. A service
    whose previous evaluation is still running is skipped for the tick. After
    ``failure_threshold`` consecutive discovery failures a service is excluded
    for ``exclusion_cooldown`` seconds and then retried.
    """

    def __init__(
            self,
            config: AutoscalerConfig,
            discovery: ContainerDiscovery,
            stats: StatsSource,
            on_intent: Callable[[ScalingIntent], object],
            clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.discovery = discovery
        self.on_intent = on_intent
        self.clock = clock

        services = config.enabled_services
        self._service_pool = ThreadPoolExecutor(
            max_workers=max(1, len(services)), thread_name_prefix="service"
        )
        self.runtimes: Dict[str, ServiceRuntime] = {}
        for service in services:
            state = ServiceRuntimeState()
            # per service, so hung samples of one service cannot starve another
            container_pool = ThreadPoolExecutor(
                max_workers=config.max_workers, thread_name_prefix=f"container-{service.name}"
            )
            self.runtimes[service.qualified_name] = ServiceRuntime(
                service=service,
                state=state,
                engine=DecisionEngine(service, state, max_gap=config.interval * MAX_GAP_INTERVALS),
                aggregator=ServiceAggregator(
                    discovery=discovery,
                    sampler=ContainerSampler(stats),
                    executor=container_pool,
                    sample_timeout=config.sample_timeout,
                ),
                container_pool=container_pool,
            )

    # ─────────────────────────── evaluation ─────────────────────────
    def _record_failure(self, runtime: ServiceRuntime, exc: DiscoveryFailure, now: float) -> None:
        state = runtime.state
        # samples from before the outage say nothing about continuity after it
        runtime.engine.reset()
        state.consecutive_failures += 1
        if state.consecutive_failures < self.config.failure_threshold:
            logger.warning(
                f"{exc} ({state.consecutive_failures}/{self.config.failure_threshold})"
            )
            return

        state.excluded_until = now + self.config.exclusion_cooldown
        logger.warning(
            f"{exc}; excluding '{runtime.service.qualified_name}' "
            f"for {self.config.exclusion_cooldown:g}s"
        )

    def evaluate_service(self, runtime: ServiceRuntime, now: float) -> Optional[ScalingIntent]:
        with runtime.state.lock:
            try:
                replicas = self.discovery.current_replicas(runtime.service)
                runtime.aggregator.aggregate(runtime.service, runtime.engine, now)
            except DiscoveryFailure as exc:
                self._record_failure(runtime, exc, now)
                return None

            if runtime.state.excluded_until is not None:
                logger.info(f"Service '{runtime.service.qualified_name}' is reachable again")
            runtime.state.consecutive_failures = 0
            runtime.state.excluded_until = None
            intent = runtime.engine.evaluate(now, replicas)

        if not intent.is_noop:
            self.on_intent(intent)
        return intent

    @staticmethod
    def _log_unexpected(name: str) -> Callable[[Future], None]:
        def callback(future: Future) -> None:
            if future.cancelled():
                return
            exc = future.exception()
            if exc is not None:
                logger.error(f"Evaluation of '{name}' crashed", exc_info=exc)
        return callback

    # ─────────────────────────── cycle ──────────────────────────────
    def run_cycle(self, now: Optional[float] = None) -> List[Future]:
        """Launches one evaluation per eligible service and returns their futures."""
        now = self.clock() if now is None else now
        logger.info(f"Metrics inspect at {now:.3f}")

        launched: List[Future] = []
        for name, runtime in self.runtimes.items():
            if runtime.in_flight is not None and not runtime.in_flight.done():
                logger.warning(f"Previous evaluation of '{name}' still running, skipping this tick")
                continue

            with runtime.state.lock:
                excluded = runtime.state.is_excluded(now)
            if excluded:
                logger.debug(f"Ignoring excluded service '{name}' until {runtime.state.excluded_until:.3f}")
                continue

            future = self._service_pool.submit(self.evaluate_service, runtime, now)
            future.add_done_callback(self._log_unexpected(name))
            runtime.in_flight = future
            launched.append(future)

        return launched

    def run_forever(self, stop: threading.Event) -> None:
        logger.info(f"Monitoring {len(self.runtimes)} services every {self.config.interval:g}s")
        while not stop.is_set():
            started = self.clock()
            self.run_cycle(started)
            elapsed = self.clock() - started
            stop.wait(max(0.0, self.config.interval - elapsed))

    def shutdown(self) -> None:
        self._service_pool.shutdown(wait=False, cancel_futures=True)
        for runtime in self.runtimes.values():
            runtime.container_pool.shutdown(wait=False, cancel_futures=True)
