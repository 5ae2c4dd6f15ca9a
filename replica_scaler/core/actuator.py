import logging

from replica_scaler.domain.errors import ActuationFailure
from replica_scaler.domain.orchestrator import ReplicaController
from replica_scaler.domain.scalingIntent import ScalingIntent

logger = logging.getLogger(__name__)


class ReplicaActuator:
    """
    Applies scaling intents to the orchestrator.

    Failures are only logged: the scheduler re-reads the replica count on every
    cycle, so a lost update is picked up by the next decision.
    """

    def __init__(self, controller: ReplicaController) -> None:
        self.controller = controller

    def apply(self, intent: ScalingIntent) -> bool:
        if intent.is_noop:
            return False

        try:
            self.controller.set_replicas(intent)
        except ActuationFailure as exc:
            logger.error(f"Could not scale '{intent.qualified_name}' to {intent.replicas}: {exc}")
            return False

        logger.info(
            f"Scaled '{intent.qualified_name}' {intent.direction.value}: "
            f"{intent.current_replicas} -> {intent.replicas}"
        )
        return True
