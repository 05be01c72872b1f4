"""Caller identity supplied by the upstream gateway.

Credentials are verified before requests reach this service; the gateway
forwards the authenticated user id (and optionally a display name).
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Header, HTTPException

MAX_USER_ID_LENGTH = 64
MAX_DISPLAY_NAME_LENGTH = 64


@dataclass(frozen=True)
class Caller:
    user_id: str
    display_name: str | None = None


async def get_current_caller(
    x_user_id: str | None = Header(default=None),
    x_user_name: str | None = Header(default=None),
) -> Caller:
    """Resolve the caller from gateway headers. Raises 401 when absent."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    if len(user_id) > MAX_USER_ID_LENGTH:
        raise HTTPException(status_code=401, detail="Invalid user id")
    display_name = (x_user_name or "").strip()[:MAX_DISPLAY_NAME_LENGTH] or None
    return Caller(user_id=user_id, display_name=display_name)
