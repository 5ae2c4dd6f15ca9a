from collections import deque
from typing import Callable, Deque, Optional

from replica_scaler.domain.utilizationSample import UtilizationSample


class SampleWindow:
    """
    Time-ordered utilization samples for one (service, metric) pair.

    Keeps everything inside ``retention`` seconds plus the newest sample at or
    before that boundary, so a query for the full retention can still tell
    whether the boundary is covered.
    """

    def __init__(self, retention: float, max_gap: Optional[float] = None):
        self.retention = retention
        self.max_gap = max_gap
        self.samples: Deque[UtilizationSample] = deque()

    def __len__(self) -> int:
        return len(self.samples)

    @property
    def latest(self) -> Optional[UtilizationSample]:
        return self.samples[-1] if self.samples else None

    def add(self, sample: UtilizationSample) -> None:
        if self.samples and sample.timestamp < self.samples[-1].timestamp:
            raise ValueError(
                f"Out-of-order sample for {sample.service}/{sample.metric.value}: "
                f"{sample.timestamp} < {self.samples[-1].timestamp}"
            )
        self.samples.append(sample)
        self._evict(sample.timestamp)

    def _evict(self, now: float) -> None:
        boundary = now - self.retention
        while len(self.samples) > 1 and self.samples[1].timestamp <= boundary:
            self.samples.popleft()

    def clear(self) -> None:
        self.samples.clear()

    def held_for(self, predicate: Callable[[float], bool], duration: float, now: float) -> bool:
        """
        True when every sample since ``now - duration`` satisfies ``predicate``
        and the run of satisfying samples reaches back to that boundary.

        Two neighbouring samples further apart than ``max_gap`` (or than
        ``duration`` when no gap is set) break the run: nothing was observed
        in between.
        """
        boundary = now - duration
        gap_limit = self.max_gap if self.max_gap is not None else duration
        newer: Optional[float] = None
        for sample in reversed(self.samples):
            if not predicate(sample.percent):
                return False
            if newer is not None and newer - sample.timestamp > gap_limit:
                return False
            if sample.timestamp <= boundary:
                return True
            newer = sample.timestamp
        return False

    def held_above(self, threshold: float, duration: float, now: float) -> bool:
        return self.held_for(lambda p: p >= threshold, duration, now)

    def held_below(self, threshold: float, duration: float, now: float) -> bool:
        return self.held_for(lambda p: p < threshold, duration, now)
