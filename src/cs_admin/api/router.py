"""Admin REST API: settlement authority. Every endpoint requires role=admin."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.cs_admin.application.schemas import (
    ConfirmReleaseRequest,
    DirectCreditRequest,
    PendingFilter,
    RefundRequest,
)
from src.cs_admin.application.service import AdminService
from src.cs_common.actor import Actor
from src.cs_common.database import get_db_session
from src.cs_common.response import ApiResponse, success_response
from src.cs_flow.application.service import FlowService
from src.cs_gateway.auth.dependencies import require_admin

router = APIRouter(prefix="/admin", tags=["admin"])

_service = AdminService()
_flow = FlowService()


@router.get("/settlements")
async def list_settlements(
    actor: Annotated[Actor, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    status: PendingFilter = Query("all", description="advance_pending | final_pending | all"),
    cursor: str | None = Query(None, description="Pagination cursor (opaque Base64)"),
    limit: int = Query(20, ge=1, le=100),
) -> ApiResponse:
    data = await _service.list_pending(db, status, cursor, limit)
    return success_response(data.model_dump(), request)


@router.get("/settlements/{settlement_id}")
async def get_settlement(
    settlement_id: str,
    actor: Annotated[Actor, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_settlement(db, settlement_id)
    return success_response(data.model_dump(), request)


@router.post("/settlements/{settlement_id}/confirm-advance")
async def confirm_advance(
    settlement_id: str,
    body: ConfirmReleaseRequest,
    actor: Annotated[Actor, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _flow.confirm_advance(
        db, settlement_id, actor, body.evidence_ref, body.idempotency_key
    )
    return success_response(data.model_dump(), request)


@router.post("/settlements/{settlement_id}/confirm-final")
async def confirm_final(
    settlement_id: str,
    body: ConfirmReleaseRequest,
    actor: Annotated[Actor, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _flow.confirm_final(
        db, settlement_id, actor, body.evidence_ref, body.idempotency_key
    )
    return success_response(data.model_dump(), request)


@router.post("/settlements/{settlement_id}/refund")
async def refund(
    settlement_id: str,
    body: RefundRequest,
    actor: Annotated[Actor, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _flow.refund(db, settlement_id, actor, body.reason)
    return success_response(data.model_dump(), request)


@router.get("/statistics")
async def statistics(
    actor: Annotated[Actor, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    days: int = Query(30, ge=1, le=365),
) -> ApiResponse:
    data = await _service.statistics(db, days)
    return success_response(data.model_dump(), request)


@router.get("/invariants")
async def invariants(
    actor: Annotated[Actor, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.check_invariants(db)
    return success_response(data.model_dump(), request)


@router.post("/wallets/{payee_id}/credit")
async def direct_credit(
    payee_id: str,
    body: DirectCreditRequest,
    actor: Annotated[Actor, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.direct_credit(
        db, payee_id, body.amount, body.idempotency_key, actor, body.description
    )
    return success_response(data.model_dump(), request)
