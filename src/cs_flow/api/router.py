"""Collaboration REST API: every endpoint requires a bearer token."""

from typing import Annotated

from fastapi import APIRouter, Body, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.cs_common.actor import Actor
from src.cs_common.database import get_db_session
from src.cs_common.response import ApiResponse, success_response
from src.cs_flow.application.schemas import ActionBody, CreateCollaborationRequest
from src.cs_flow.application.service import FlowService
from src.cs_gateway.auth.dependencies import get_current_actor

router = APIRouter(prefix="/collaborations", tags=["collaborations"])

_service = FlowService()


@router.post("")
async def create_collaboration(
    body: CreateCollaborationRequest,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.create_collaboration(
        db, actor, body.payer_id, body.payee_id, body.title, body.proposed_amount
    )
    return success_response(data.model_dump(), request)


@router.get("/{collaboration_id}")
async def get_collaboration(
    collaboration_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_collaboration(db, collaboration_id, actor)
    return success_response(data.model_dump(), request)


@router.post("/{collaboration_id}/actions")
async def dispatch_action(
    collaboration_id: str,
    body: Annotated[ActionBody, Body()],
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.dispatch(db, collaboration_id, actor, body.to_action())
    return success_response(data.model_dump(), request)


@router.get("/{collaboration_id}/history")
async def get_history(
    collaboration_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_history(db, collaboration_id, actor)
    return success_response(data.model_dump(), request)


@router.get("/{collaboration_id}/breakdown")
async def get_breakdown(
    collaboration_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_breakdown(db, collaboration_id, actor)
    return success_response(data.model_dump(), request)


@router.get("/{collaboration_id}/timeline")
async def get_timeline(
    collaboration_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_timeline(db, collaboration_id, actor)
    return success_response(data.model_dump(), request)
