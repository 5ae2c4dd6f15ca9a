from abc import ABC, abstractmethod
from typing import List

from replica_scaler.domain.rawSample import ContainerHandle, RawSample
from replica_scaler.domain.scalingIntent import ScalingIntent
from replica_scaler.domain.serviceConfig import ServiceConfig


class ContainerDiscovery(ABC):
    @abstractmethod
    def list_service_containers(self, service: ServiceConfig) -> List[ContainerHandle]:
        """
        Lists the running containers of a service.

        Returns an empty list when the service legitimately has zero replicas and
        raises DiscoveryFailure when the service cannot be resolved.
        """

    @abstractmethod
    def current_replicas(self, service: ServiceConfig) -> int:
        pass


class StatsSource(ABC):
    @abstractmethod
    def snapshot(self, container: ContainerHandle) -> RawSample:
        pass


class ReplicaController(ABC):
    @abstractmethod
    def set_replicas(self, intent: ScalingIntent) -> None:
        pass
