"""FastAPI dependencies resolving the calling Actor.

Usage in a protected router:
    from src.cs_gateway.auth.dependencies import get_current_actor

    @router.get("/wallet")
    async def wallet(actor: Annotated[Actor, Depends(get_current_actor)]):
        ...

The resolved actor is also stored on request.state so the global error
handler can decide how much error detail the caller may see.
"""

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.cs_common.actor import Actor
from src.cs_common.errors import AdminRequiredError, InvalidCredentialsError
from src.cs_gateway.auth.jwt_handler import ADMIN_ROLE, decode_token

_bearer = HTTPBearer(auto_error=False)


async def get_current_actor(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> Actor:
    """Raises InvalidCredentialsError (401) if the token is missing or invalid."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise InvalidCredentialsError()
    payload = decode_token(credentials.credentials)

    if payload.get("role") == ADMIN_ROLE:
        actor = Actor.admin(payload["sub"])
    else:
        actor = Actor.user(payload["sub"])
    request.state.actor = actor
    return actor


async def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.is_admin:
        raise AdminRequiredError()
    return actor
