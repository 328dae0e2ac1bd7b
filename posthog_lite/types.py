from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Optional, Tuple

SIMPLE = "simple"
COMPLEX = "complex"


@dataclass
class QueuedEvent:
    message: dict
    future: Future = field(default_factory=Future)


@dataclass(frozen=True)
class Batch:
    """One HTTP payload: the drained events in the order they were enqueued."""

    api_key: str
    events: Tuple[dict, ...]

    def __len__(self):
        return len(self.events)


@dataclass(frozen=True)
class FlagDefinition:
    key: str
    active: bool
    rollout_percentage: Optional[float]
    kind: str

    @property
    def is_simple(self) -> bool:
        return self.kind == SIMPLE

    @classmethod
    def from_json(cls, resp: Any) -> "FlagDefinition":
        rollout_percentage = resp.get("rollout_percentage")
        return cls(
            key=resp["key"],
            active=bool(resp.get("active", False)),
            rollout_percentage=(
                float(rollout_percentage) if rollout_percentage is not None else None
            ),
            kind=SIMPLE if resp.get("is_simple_flag") else COMPLEX,
        )
