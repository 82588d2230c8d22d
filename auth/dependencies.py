"""
auth/dependencies.py -- FastAPI Depends() helpers for session resolution.

Two token sources are checked in priority order:
  1. JWT cookie ("access_token") -- set by the web login and register flows.
  2. Authorization: Bearer <token> header -- API clients.

try_get_session() is the soft variant (returns None for anonymous).
get_current_session() wraps it and raises HTTP 401 if there is no session.

The access-policy middleware resolves the session once per request and
stores it on request.state.session; these helpers reuse that result when
present instead of verifying the JWT a second time.

Layer rule: no imports from web/ or api/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import Session
from auth.tokens import COOKIE_NAME, SessionManager

_UNSET = object()


def token_from_request(request: Request) -> str | None:
    token: str | None = request.cookies.get(COOKIE_NAME)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    return token or None


def resolve_session(request: Request) -> Session | None:
    """Verify whatever token the request carries. Never raises."""
    sessions: SessionManager = request.app.state.sessions
    return sessions.resolve(token_from_request(request))


def try_get_session(request: Request) -> Session | None:
    """Return the request's Session, or None when anonymous."""
    cached = getattr(request.state, "session", _UNSET)
    if cached is not _UNSET:
        return cached
    session = resolve_session(request)
    request.state.session = session
    return session


def get_current_session(request: Request) -> Session:
    """Require a session. Raises HTTP 401 if the request is anonymous.

    Use as a FastAPI dependency:
        @router.delete("/thing/{id}")
        async def route(session: Session = Depends(get_current_session)): ...
    """
    session = try_get_session(request)
    if session is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return session
