from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ContainerHandle:
    id: str
    service: str
    name: Optional[str] = None
    namespace: Optional[str] = None


@dataclass(frozen=True)
class RawSample:
    cpu_usage: float
    system_usage: float
    online_cpus: int
    memory_usage: float = 0.0
    memory_limit: float = 0.0
    timestamp: float = 0.0
