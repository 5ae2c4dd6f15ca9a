from __future__ import annotations

import logging
import time
from typing import Any, List, Mapping

import docker
import requests
from docker.errors import DockerException
from docker.models.services import Service

from replica_scaler.domain.errors import ActuationFailure, ContainerSampleError, DiscoveryFailure
from replica_scaler.domain.orchestrator import ContainerDiscovery, ReplicaController, StatsSource
from replica_scaler.domain.rawSample import ContainerHandle, RawSample
from replica_scaler.domain.scalingIntent import ScalingIntent
from replica_scaler.domain.serviceConfig import ServiceConfig

logger = logging.getLogger(__name__)

STACK_LABEL = "com.docker.stack.namespace"
SERVICE_LABEL = "com.docker.swarm.service.name"


def parse_stats(container_id: str, stats: Mapping[str, Any]) -> RawSample:
    """Turns a ``/containers/{id}/stats`` document into a RawSample."""
    try:
        cpu_stats = stats["cpu_stats"]
        cpu_usage = cpu_stats["cpu_usage"]
        system_usage = cpu_stats["system_cpu_usage"]
    except (KeyError, TypeError) as exc:
        raise ContainerSampleError(container_id, "stats without cpu counters (not running?)") from exc

    online_cpus = cpu_stats.get("online_cpus") or len(cpu_usage.get("percpu_usage") or [1])

    memory_stats = stats.get("memory_stats") or {}
    memory_usage = float(memory_stats.get("usage", 0))
    details = memory_stats.get("stats") or {}
    # page cache is reclaimable, the docker CLI leaves it out as well
    if "inactive_file" in details:
        memory_usage -= details["inactive_file"]
    elif "cache" in details:
        memory_usage -= details["cache"]

    return RawSample(
        cpu_usage=float(cpu_usage["total_usage"]),
        system_usage=float(system_usage),
        online_cpus=int(online_cpus),
        memory_usage=max(memory_usage, 0.0),
        memory_limit=float(memory_stats.get("limit", 0)),
        timestamp=time.time(),
    )


class DockerSwarmClient(ContainerDiscovery, StatsSource, ReplicaController):
    def __init__(self, docker_client: docker.DockerClient | None = None, timeout: int = 10) -> None:
        self.client = docker_client or docker.from_env(timeout=timeout)

    def _find_service(self, name: str, stack_name: str | None) -> Service:
        filters = {"name": name}
        if stack_name:
            filters["label"] = f"{STACK_LABEL}={stack_name}"

        try:
            services = self.client.services.list(filters=filters)
        except (DockerException, requests.RequestException) as exc:
            raise DiscoveryFailure(name, f"listing services failed: {exc}") from exc

        # the name filter matches prefixes
        for service in services:
            if service.name == name:
                return service
        raise DiscoveryFailure(name, "service not found")

    def list_service_containers(self, service: ServiceConfig) -> List[ContainerHandle]:
        swarm_service = self._find_service(service.qualified_name, service.stack_name)
        try:
            containers = self.client.containers.list(
                filters={"label": f"{SERVICE_LABEL}={swarm_service.name}"}
            )
        except (DockerException, requests.RequestException) as exc:
            raise DiscoveryFailure(
                service.qualified_name, f"listing containers failed: {exc}"
            ) from exc

        return [ContainerHandle(id=c.id, service=service.name, name=c.name) for c in containers]

    def current_replicas(self, service: ServiceConfig) -> int:
        swarm_service = self._find_service(service.qualified_name, service.stack_name)
        mode = swarm_service.attrs.get("Spec", {}).get("Mode", {})
        if "Replicated" not in mode:
            raise DiscoveryFailure(service.qualified_name, "service is not in replicated mode")
        return int(mode["Replicated"].get("Replicas", 0))

    def snapshot(self, container: ContainerHandle) -> RawSample:
        try:
            stats = self.client.api.stats(container.id, stream=False)
        except (DockerException, requests.RequestException) as exc:
            raise ContainerSampleError(container.id, str(exc)) from exc
        return parse_stats(container.id, stats)

    def set_replicas(self, intent: ScalingIntent) -> None:
        try:
            swarm_service = self._find_service(intent.qualified_name, intent.stack_name)
            swarm_service.scale(intent.replicas)
        except (DiscoveryFailure, DockerException, requests.RequestException) as exc:
            raise ActuationFailure(
                f"Scaling service '{intent.qualified_name}' to {intent.replicas} failed: {exc}"
            ) from exc
