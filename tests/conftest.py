"""Shared test fixtures."""

import os
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

# Required settings without defaults; must be present before src.main is imported
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-not-for-production")
os.environ.setdefault("PAYMENT_VERIFIER_SECRET", "test-verifier-secret")

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from jose import jwt  # noqa: E402

from config.settings import settings  # noqa: E402
from src.main import app  # noqa: E402


@pytest.fixture
async def client() -> AsyncClient:
    """Async HTTP client for testing FastAPI endpoints."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def issue_token() -> Callable[..., str]:
    """Sign access tokens the way the platform identity service does."""

    def _issue(user_id: str, role: str | None = None) -> str:
        now = datetime.now(UTC)
        payload: dict[str, object] = {
            "sub": user_id,
            "type": "access",
            "iat": now,
            "exp": now + timedelta(minutes=30),
        }
        if role:
            payload["role"] = role
        return str(jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM))

    return _issue
