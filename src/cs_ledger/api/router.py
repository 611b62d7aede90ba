"""Wallet REST API: the caller's own balance and ledger history."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.cs_common.actor import Actor
from src.cs_common.database import get_db_session
from src.cs_common.enums import LedgerStage
from src.cs_common.response import ApiResponse, success_response
from src.cs_gateway.auth.dependencies import get_current_actor
from src.cs_ledger.application.service import LedgerApplicationService

router = APIRouter(prefix="/wallet", tags=["wallet"])

_service = LedgerApplicationService()


@router.get("")
async def get_wallet(
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_wallet(db, actor.id)
    return success_response(data.model_dump(), request)


@router.get("/ledger")
async def list_ledger(
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    cursor: str | None = Query(None, description="Pagination cursor (opaque Base64)"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    stage: LedgerStage | None = Query(None, description="Filter by ledger stage"),
) -> ApiResponse:
    data = await _service.list_ledger(
        db, actor.id, cursor, limit, stage.value if stage else None
    )
    return success_response(data.model_dump(), request)
