from typing import Sequence


class AutoscalerError(RuntimeError):
    pass


class ConfigurationError(AutoscalerError, ValueError):
    """Invalid threshold, duration or reduction; raised while loading, never at runtime."""


class DiscoveryFailure(AutoscalerError):
    """The service could not be resolved or none of its containers answered."""

    def __init__(self, service: str, reason: str) -> None:
        super().__init__(f"Discovery failed for service '{service}': {reason}")
        self.service = service
        self.reason = reason


class NoContainersFound(DiscoveryFailure):
    def __init__(self, service: str) -> None:
        super().__init__(service, "no containers found")


class ContainerSampleError(AutoscalerError):
    def __init__(self, container_id: str, reason: str) -> None:
        super().__init__(f"Failed to sample container {container_id}: {reason}")
        self.container_id = container_id
        self.reason = reason


class PartialSampleFailure(AutoscalerError):
    """
    Some containers of a service could not be sampled.

    Recorded on the aggregation result as an observability signal, never raised.
    """

    def __init__(self, service: str, failed: Sequence[str], total: int) -> None:
        super().__init__(
            f"{len(failed)}/{total} containers of service '{service}' failed to sample"
        )
        self.service = service
        self.failed = tuple(failed)
        self.total = total


class ActuationFailure(AutoscalerError):
    pass
