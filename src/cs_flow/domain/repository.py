from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.cs_common.actor import Actor
from src.cs_flow.domain.models import Collaboration, FlowTransition, StateChange


class CollaborationRepositoryProtocol(Protocol):
    async def create(self, db: AsyncSession, collab: Collaboration) -> Collaboration: ...

    async def get(self, db: AsyncSession, collaboration_id: str) -> Collaboration | None: ...

    async def get_by_external_order_id(
        self, db: AsyncSession, external_order_id: str
    ) -> Collaboration | None: ...

    async def compare_and_set(
        self,
        db: AsyncSession,
        collab: Collaboration,
        change: StateChange,
    ) -> Collaboration | None: ...

    async def record_transition(
        self,
        db: AsyncSession,
        collaboration_id: str,
        previous_state: str,
        change: StateChange,
        action: str,
        actor: Actor,
        detail: dict[str, Any],
    ) -> FlowTransition: ...

    async def list_transitions(
        self, db: AsyncSession, collaboration_id: str
    ) -> list[FlowTransition]: ...
