"""Bind the authenticated user for a request.

Authentication happens upstream; the auth layer forwards the verified user
id in the `X-User-Id` header.
"""

from fastapi import Request

from models.upload_batch import UserSession
from services.errors import Unauthenticated

USER_HEADER = "X-User-Id"


def current_session(request: Request) -> UserSession:
    """Return the request's session; `user_id` is None when the header is absent."""
    user_id = (request.headers.get(USER_HEADER) or "").strip()
    return UserSession(user_id=user_id or None)


def require_session(request: Request) -> UserSession:
    """Return the request's session or raise Unauthenticated."""
    session = current_session(request)
    if not session.is_authenticated:
        raise Unauthenticated("You must be logged in")
    return session
