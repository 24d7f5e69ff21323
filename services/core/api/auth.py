"""
Caller identity.

Authentication happens upstream (auth gateway); the gateway forwards the
authenticated user id in a trusted header, AUTH_USER_HEADER (default
X-User-Id). Anything missing or not a UUID is Unauthorized.

Usage:
    from api.auth import get_current_user_id

    @router.post("/protected")
    async def endpoint(user_id: UUID = Depends(get_current_user_id)):
        ...
"""
import os
import uuid

from fastapi import Request

from exceptions import Unauthorized

AUTH_USER_HEADER = os.getenv("AUTH_USER_HEADER", "X-User-Id")


async def get_current_user_id(request: Request) -> uuid.UUID:
    raw = request.headers.get(AUTH_USER_HEADER)
    if not raw:
        raise Unauthorized()
    try:
        return uuid.UUID(raw.strip())
    except ValueError:
        raise Unauthorized()
