from __future__ import annotations

import logging
from typing import Any, Final, Tuple

import requests

from replica_scaler.domain.errors import ContainerSampleError
from replica_scaler.domain.orchestrator import StatsSource
from replica_scaler.domain.rawSample import ContainerHandle, RawSample

logger = logging.getLogger(__name__)


class PrometheusClient(StatsSource):
    """
    Reads pod counters scraped from cAdvisor.

    ``container_cpu_usage_seconds_total`` is cumulative CPU time, so the time of
    the scrape that produced it serves as the reference counter with a single
    unit: the resulting percentage is CPU-seconds per second, the same scale
    Docker reports. The evaluation time of the query is no reference, the
    counter only moves once per scrape.
    """

    _QUERY_PATH: Final[str] = "/api/v1/query"

    def __init__(
            self,
            base_url: str,
            timeout: float = 2.0,
            session: requests.Session | None = None,
    ) -> None:
        self.base = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _query(self, container: ContainerHandle, query: str) -> Tuple[float, float]:
        try:
            r = self.session.get(
                f"{self.base}{self._QUERY_PATH}", params={"query": query}, timeout=self.timeout
            )
            r.raise_for_status()
        except requests.RequestException as exc:
            raise ContainerSampleError(container.id, "failed to query Prometheus") from exc

        data: dict[str, Any] = r.json()
        if data.get("status") != "success":
            raise ContainerSampleError(container.id, f"Prometheus error: {data}")

        try:
            result = data["data"]["result"]
            if not result:
                raise ContainerSampleError(container.id, f"no data for query {query}")
            timestamp, value = result[0]["value"]
            return float(timestamp), float(value)
        except (KeyError, IndexError, ValueError, TypeError) as exc:
            raise ContainerSampleError(container.id, f"invalid Prometheus response: {data}") from exc

    def _selector(self, container: ContainerHandle) -> str:
        labels = [f'pod="{container.id}"', 'container!=""']
        if container.namespace:
            labels.insert(0, f'namespace="{container.namespace}"')
        return "{" + ",".join(labels) + "}"

    def snapshot(self, container: ContainerHandle) -> RawSample:
        selector = self._selector(container)
        timestamp, scraped_at = self._query(
            container, f"max(timestamp(container_cpu_usage_seconds_total{selector}))"
        )
        _, cpu_seconds = self._query(
            container, f"sum(container_cpu_usage_seconds_total{selector})"
        )
        _, memory_usage = self._query(
            container, f"sum(container_memory_working_set_bytes{selector})"
        )
        _, memory_limit = self._query(
            container, f"sum(container_spec_memory_limit_bytes{selector})"
        )
        logger.debug(
            f"[{timestamp:.3f}] Fetched counters for pod {container.id}: "
            f"cpu={cpu_seconds:.3f}s scraped at {scraped_at:.3f}"
        )

        return RawSample(
            cpu_usage=cpu_seconds,
            system_usage=scraped_at,
            online_cpus=1,
            memory_usage=memory_usage,
            memory_limit=memory_limit,
            timestamp=timestamp,
        )
