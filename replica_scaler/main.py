import logging
import os
import signal
import threading
from typing import Tuple

from replica_scaler.core.actuator import ReplicaActuator
from replica_scaler.core.cycle_scheduler import CycleScheduler
from replica_scaler.domain.config_loader import load_config
from replica_scaler.domain.orchestrator import ContainerDiscovery, ReplicaController, StatsSource

logger = logging.getLogger(__name__)


def build_backend(name: str) -> Tuple[ContainerDiscovery, StatsSource, ReplicaController]:
    if name == "swarm":
        from replica_scaler.infra.docker_swarm_client import DockerSwarmClient

        swarm = DockerSwarmClient()
        return swarm, swarm, swarm

    if name == "kubernetes":
        from replica_scaler.infra.kubernetes_client import KubernetesClient
        from replica_scaler.infra.prometheus_client import PrometheusClient

        kube = KubernetesClient(
            namespace=os.getenv("K8S_NAMESPACE", "default"),
            label_key=os.getenv("K8S_SERVICE_LABEL", "app"),
        )
        prometheus = PrometheusClient(base_url=os.getenv("PROMETHEUS_URL", "http://prometheus:9090"))
        return kube, prometheus, kube

    raise ValueError(f"Unknown backend '{name}', expected 'swarm' or 'kubernetes'")


def main():
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # --- Configuration ---
    config = load_config(os.getenv("AUTOSCALER_CONFIG", "autoscaler.json"))

    # --- Infrastructure ---
    discovery, stats, controller = build_backend(os.getenv("AUTOSCALER_BACKEND", "swarm"))
    actuator = ReplicaActuator(controller)

    # --- Scheduler ---
    scheduler = CycleScheduler(
        config=config,
        discovery=discovery,
        stats=stats,
        on_intent=actuator.apply,
    )

    stop = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stop.set())

    logger.info("Starting...")
    try:
        scheduler.run_forever(stop)
    except KeyboardInterrupt:
        logger.info("Exiting on Ctrl+C")
    finally:
        scheduler.shutdown()


if __name__ == "__main__":
    main()
