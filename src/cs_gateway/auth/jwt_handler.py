"""Bearer token verification.

Tokens are issued by the platform's identity service; this service only
decodes them.

Claims:
  sub   user id (required)
  role  "admin" for administrators, absent for regular users
  type  always "access"

HS256 with a shared JWT_SECRET. No revocation list: a token is valid until it
expires.
"""

from jose import JWTError, jwt

from config.settings import settings
from src.cs_common.errors import InvalidCredentialsError

_ALGORITHM = settings.JWT_ALGORITHM

ADMIN_ROLE = "admin"


def decode_token(token: str) -> dict[str, str]:
    """Decode and validate an access token.

    Raises:
        InvalidCredentialsError: signature invalid, token expired, wrong type,
            or missing subject.
    """
    try:
        payload: dict[str, str] = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[_ALGORITHM],  # explicit list prevents algorithm confusion
        )
    except JWTError:
        raise InvalidCredentialsError() from None

    if payload.get("type") != "access" or not payload.get("sub"):
        raise InvalidCredentialsError()
    return payload
