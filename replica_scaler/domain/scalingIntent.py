from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ScalingDirection(str, Enum):
    NONE = "none"
    UP = "up"
    DOWN = "down"


@dataclass(frozen=True)
class ScalingIntent:
    service: str
    direction: ScalingDirection
    current_replicas: int
    replicas: int
    stack_name: Optional[str] = None

    @property
    def qualified_name(self) -> str:
        if self.stack_name:
            return f"{self.stack_name}_{self.service}"
        return self.service

    @property
    def is_noop(self) -> bool:
        return self.direction is ScalingDirection.NONE or self.replicas == self.current_replicas
