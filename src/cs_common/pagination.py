"""Opaque cursor pagination shared by list endpoints.

Lists are ordered by a monotonically increasing key (BIGSERIAL or snowflake
string). The cursor carries the last key of the previous page; callers fetch
limit+1 rows to detect has_more without a COUNT(*) query.
"""

import base64
import json
from typing import Any


def cursor_encode(last_id: Any) -> str:
    """Encode the last seen key into an opaque Base64 cursor string."""
    payload = json.dumps({"id": last_id})
    return base64.urlsafe_b64encode(payload.encode()).decode()


def cursor_decode(cursor: str | None) -> Any:
    """Decode a cursor back to the last seen key. Returns None on garbage input."""
    if not cursor:
        return None
    try:
        payload = json.loads(base64.urlsafe_b64decode(cursor.encode()).decode())
        return payload["id"]
    except (ValueError, KeyError, TypeError):
        return None


def split_page(rows: list, limit: int) -> tuple[list, bool]:
    """Split a limit+1 fetch into (page, has_more)."""
    has_more = len(rows) > limit
    return rows[:limit], has_more
