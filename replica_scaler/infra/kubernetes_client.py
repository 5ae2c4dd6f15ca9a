from __future__ import annotations

import logging
from typing import List, Mapping, Any

from kubernetes import client, config
from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import HTTPError

from replica_scaler.domain.errors import ActuationFailure, DiscoveryFailure
from replica_scaler.domain.orchestrator import ContainerDiscovery, ReplicaController
from replica_scaler.domain.rawSample import ContainerHandle
from replica_scaler.domain.scalingIntent import ScalingIntent
from replica_scaler.domain.serviceConfig import ServiceConfig

logger = logging.getLogger(__name__)


def _load_config() -> None:
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()


def _reason(exc: Exception) -> str:
    return getattr(exc, "reason", None) or str(exc)


class KubernetesClient(ContainerDiscovery, ReplicaController):
    """
    Deployments as services: the stack name is the namespace and pods are
    matched with ``<label_key>=<service name>``.
    """

    def __init__(self, namespace: str = "default", label_key: str = "app",
                 request_timeout: float = 5.0) -> None:
        _load_config()
        self.v1 = client.CoreV1Api()
        self.apps = client.AppsV1Api()
        self.ns = namespace
        self.label_key = label_key
        self.request_timeout = request_timeout

    def _namespace(self, stack_name: str | None) -> str:
        return stack_name or self.ns

    def list_service_containers(self, service: ServiceConfig) -> List[ContainerHandle]:
        ns = self._namespace(service.stack_name)
        try:
            pods = self.v1.list_namespaced_pod(
                namespace=ns,
                label_selector=f"{self.label_key}={service.name}",
                field_selector="status.phase=Running",
                _request_timeout=self.request_timeout,
            ).items
        except (ApiException, HTTPError) as exc:
            raise DiscoveryFailure(service.qualified_name, f"listing pods failed: {_reason(exc)}") from exc

        return [
            ContainerHandle(id=pod.metadata.name, service=service.name, name=pod.metadata.name, namespace=ns)
            for pod in pods
        ]

    def current_replicas(self, service: ServiceConfig) -> int:
        try:
            scale = self.apps.read_namespaced_deployment_scale(
                name=service.name,
                namespace=self._namespace(service.stack_name),
                _request_timeout=self.request_timeout,
            )
        except (ApiException, HTTPError) as exc:
            raise DiscoveryFailure(service.qualified_name, f"reading scale failed: {_reason(exc)}") from exc
        return int(scale.spec.replicas or 0)

    def set_replicas(self, intent: ScalingIntent) -> None:
        patch: Mapping[str, Any] = {"spec": {"replicas": intent.replicas}}
        ns = self._namespace(intent.stack_name)

        try:
            self.apps.patch_namespaced_deployment_scale(
                name=intent.service,
                namespace=ns,
                body=patch,
                _request_timeout=self.request_timeout,
            )
        except (ApiException, HTTPError) as exc:
            raise ActuationFailure(
                f"Patching scale of deployment {ns}/{intent.service} failed: {_reason(exc)}"
            ) from exc

        logger.debug(f"[scaler] deployment={ns}/{intent.service} replicas {intent.current_replicas} -> {intent.replicas}")
