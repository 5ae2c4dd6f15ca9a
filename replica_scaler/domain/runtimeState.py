import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class EngineState(str, Enum):
    STABLE = "stable"
    PENDING_SCALE_UP = "pending_scale_up"
    PENDING_SCALE_DOWN = "pending_scale_down"


@dataclass
class ServiceRuntimeState:
    replicas: Optional[int] = None
    state: EngineState = EngineState.STABLE
    last_scale_time: Optional[float] = None
    consecutive_failures: int = 0
    excluded_until: Optional[float] = None
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def is_excluded(self, now: float) -> bool:
        return self.excluded_until is not None and now < self.excluded_until
