"""FastAPI application entry point.

Run with: uvicorn src.main:app --reload --port 8000
"""

# ruff: noqa: E402  -- uvloop.install() must run before other imports

import uvloop

uvloop.install()

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from config.settings import settings
from src.cs_admin.api.router import router as admin_router
from src.cs_commission.api.router import router as commission_router
from src.cs_common.database import engine
from src.cs_common.errors import AppError
from src.cs_common.redis_client import close_redis, get_redis
from src.cs_common.response import error_response
from src.cs_flow.api.router import router as collaboration_router
from src.cs_gateway.middleware.request_log import RequestLogMiddleware
from src.cs_ledger.api.router import router as wallet_router
from src.cs_payment.api.router import router as payment_router

logger = logging.getLogger(__name__)

# Shown to payers and payees instead of the internal error detail
_GENERIC_REJECTED = "Request rejected"
_GENERIC_FAILED = "Processing failed"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: verify DB + Redis connections. Shutdown: dispose."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    await get_redis()
    yield
    await engine.dispose()
    await close_redis()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


app.add_middleware(RequestLogMiddleware)


def public_message(exc: AppError, request: Request) -> str:
    """Full detail for admins, a generic status for everyone else."""
    actor = getattr(request.state, "actor", None)
    if actor is not None and actor.is_admin:
        return exc.message
    return _GENERIC_FAILED if exc.http_status >= 500 else _GENERIC_REJECTED


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error("%s failed with %d: %s", request.url.path, exc.code, exc.message)
    resp = error_response(
        exc.code, public_message(exc, request), getattr(request.state, "request_id", None)
    )
    return JSONResponse(
        status_code=exc.http_status,
        content=resp.model_dump(),
    )


app.include_router(collaboration_router, prefix="/api/v1")
app.include_router(payment_router, prefix="/api/v1")
app.include_router(admin_router, prefix="/api/v1")
app.include_router(commission_router, prefix="/api/v1")
app.include_router(wallet_router, prefix="/api/v1")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": "0.1.0"}
