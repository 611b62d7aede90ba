"""Outbound collaboration events, published after the transaction commits."""

from dataclasses import asdict, dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class FlowStateChanged:
    collaboration_id: str
    previous_state: str
    new_state: str
    awaiting_role: str | None
    timestamp: str
    type: str = "flow_state_changed"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Milestone:
    """Human-readable settlement milestone (breakdown, advance, final, refund)."""

    collaboration_id: str
    milestone: str
    text: str
    timestamp: str
    type: str = "milestone"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class EventPublisherProtocol(Protocol):
    async def publish(
        self, collaboration_id: str, events: list[FlowStateChanged | Milestone]
    ) -> None: ...
