"""Admin endpoints for the platform commission rate."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.cs_commission.application.schemas import SetCommissionRequest
from src.cs_commission.application.service import CommissionSettingsService
from src.cs_common.actor import Actor
from src.cs_common.database import get_db_session
from src.cs_common.response import ApiResponse, success_response
from src.cs_gateway.auth.dependencies import require_admin

router = APIRouter(prefix="/admin/commission", tags=["admin"])

_service = CommissionSettingsService()


@router.get("")
async def get_commission(
    actor: Annotated[Actor, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_active(db)
    return success_response(data.model_dump(), request)


@router.put("")
async def set_commission(
    body: SetCommissionRequest,
    actor: Annotated[Actor, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.set_rate(db, body.rate_bps, actor)
    return success_response(data.model_dump(), request)
