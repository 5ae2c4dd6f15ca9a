import logging
from typing import Dict, Optional

from replica_scaler.core.sample_window import SampleWindow
from replica_scaler.domain.metricThreshold import MetricKind
from replica_scaler.domain.runtimeState import EngineState, ServiceRuntimeState
from replica_scaler.domain.scalingIntent import ScalingDirection, ScalingIntent
from replica_scaler.domain.serviceConfig import ServiceConfig
from replica_scaler.domain.utilizationSample import UtilizationSample

logger = logging.getLogger(__name__)


class DecisionEngine:
    """
    Per-service threshold state machine.

    1.  Each tick the aggregator records one sample per metric.
    2.  The latest samples move the state between Stable, PendingScaleUp and
        PendingScaleDown; crossing back over the threshold cancels a pending
        transition.
    3.  Scale up when any metric stayed >= its threshold for scale_up_duration.
        Scale up wins when metrics disagree.
    4.  Scale down when every sampled metric stayed below its threshold for
        scale_down_duration.
    5.  After an action all windows are cleared, so the next action needs a
        full debounce period again.
    """

    def __init__(self, service: ServiceConfig, state: Optional[ServiceRuntimeState] = None,
                 max_gap: Optional[float] = None) -> None:
        self.service = service
        self.state = state if state is not None else ServiceRuntimeState()
        self.windows: Dict[MetricKind, SampleWindow] = {
            kind: SampleWindow(retention=threshold.retention, max_gap=max_gap)
            for kind, threshold in service.thresholds.items()
        }

    # ─────────────────────────── samples ────────────────────────────
    def record(self, sample: UtilizationSample) -> None:
        window = self.windows.get(sample.metric)
        if window is None:
            logger.debug(f"Ignoring {sample.metric.value} sample for '{self.service.name}': no threshold")
            return
        window.add(sample)

    def reset_windows(self) -> None:
        for window in self.windows.values():
            window.clear()

    def reset(self) -> None:
        self.reset_windows()
        self.state.state = EngineState.STABLE

    # ─────────────────────────── helpers ────────────────────────────
    def _latest_state(self) -> EngineState:
        above = below = False
        for kind, window in self.windows.items():
            latest = window.latest
            if latest is None:
                continue
            if latest.percent >= self.service.thresholds[kind].trigger_percent:
                above = True
            else:
                below = True

        if above:
            return EngineState.PENDING_SCALE_UP
        if below:
            return EngineState.PENDING_SCALE_DOWN
        return EngineState.STABLE

    def _transition(self, new_state: EngineState) -> None:
        old_state = self.state.state
        if old_state == new_state:
            return
        if old_state != EngineState.STABLE and new_state != EngineState.STABLE:
            # crossed back before the debounce elapsed, the new direction starts next tick
            logger.info(f"Service '{self.service.name}': {old_state.value} cancelled, metric crossed back")
            self.state.state = EngineState.STABLE
            return
        self.state.state = new_state

    def _wants_scale_up(self, now: float) -> bool:
        return any(
            window.held_above(
                self.service.thresholds[kind].trigger_percent,
                self.service.thresholds[kind].scale_up_duration,
                now,
            )
            for kind, window in self.windows.items()
        )

    def _wants_scale_down(self, now: float) -> bool:
        sampled = [(kind, window) for kind, window in self.windows.items() if window.latest is not None]
        if not sampled:
            return False
        return all(
            window.held_below(
                self.service.thresholds[kind].trigger_percent,
                self.service.thresholds[kind].scale_down_duration,
                now,
            )
            for kind, window in sampled
        )

    def _intent(self, direction: ScalingDirection, current: int, target: int) -> ScalingIntent:
        return ScalingIntent(
            service=self.service.name,
            stack_name=self.service.stack_name,
            direction=direction,
            current_replicas=current,
            replicas=target,
        )

    def _commit(self, direction: ScalingDirection, current: int, target: int, now: float) -> ScalingIntent:
        logger.info(
            f"Scaling {direction.value} service '{self.service.name}': "
            f"replicas {current} -> {target}"
        )
        self.state.state = EngineState.STABLE
        self.state.last_scale_time = now
        self.reset_windows()
        return self._intent(direction, current, target)

    # ─────────────────────────── evaluate ───────────────────────────
    def evaluate(self, now: float, current_replicas: int) -> ScalingIntent:
        self.state.replicas = current_replicas
        self._transition(self._latest_state())

        if self._wants_scale_up(now):
            if current_replicas >= self.service.max_replicas:
                logger.warning(
                    f"Service '{self.service.name}' is capped at {self.service.max_replicas} replicas, "
                    f"not scaling up"
                )
                return self._intent(ScalingDirection.NONE, current_replicas, current_replicas)
            target = min(current_replicas + self.service.scale_step, self.service.max_replicas)
            return self._commit(ScalingDirection.UP, current_replicas, target, now)

        if self._wants_scale_down(now):
            if current_replicas <= self.service.min_replicas:
                logger.debug(
                    f"Service '{self.service.name}' already at the minimum of {self.service.min_replicas}"
                )
                return self._intent(ScalingDirection.NONE, current_replicas, current_replicas)
            target = max(current_replicas - self.service.scale_step, self.service.min_replicas)
            return self._commit(ScalingDirection.DOWN, current_replicas, target, now)

        return self._intent(ScalingDirection.NONE, current_replicas, current_replicas)
