"""Payment verifier callback. Authenticated by the notice signature, not a bearer token."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.cs_common.database import get_db_session
from src.cs_common.response import ApiResponse, success_response
from src.cs_payment.application.schemas import PaymentVerifiedRequest
from src.cs_payment.application.service import PaymentIntakeService

router = APIRouter(prefix="/payments", tags=["payments"])

_service = PaymentIntakeService()


@router.post("/verified")
async def payment_verified(
    body: PaymentVerifiedRequest,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.handle_verified_payment(db, body.to_notice())
    return success_response(data.model_dump(), request)
