"""
api/routes/auth.py -- Credential and session REST endpoints.

Routes:
  POST /api/auth/register   -- create an account; 201 user without password
  POST /api/auth/login      -- password login; sets the JWT cookie
  POST /api/auth/logout     -- clears the cookie; 200
  GET  /api/auth/session    -- current session, or {} when anonymous

Everything under /api/auth is public in the access policy; none of these
routes need a prior session.

Security:
  [H2] POST /login is rate-limited to 10 requests/minute per IP.
  [C1] Authenticator.authenticate() provides timing equalization -- use it,
       never inline get_by_email() + verify().
  [M5] Cache-Control: no-store on login responses.
"""

import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import limiter
from api.models import LoginRequest, MessageResponse, RegisterRequest, SessionResponse, UserResponse
from auth.dependencies import try_get_session
from auth.tokens import Authenticator, SessionManager
from auth.users import RegistrationError, register_user

logger = logging.getLogger("keyhole.api.auth")

router = APIRouter()


def create_account(request: Request, body: RegisterRequest) -> UserResponse:
    """Run the shared registration path and translate its failures to HTTP.

    RegistrationError -> 400 with the error's code (missing_fields,
    password_too_short, email_exists). Any other store failure is logged and
    collapsed into a generic 500; the client never sees the driver message.
    """
    state = request.app.state
    try:
        user = register_user(
            state.user_store,
            state.hasher,
            body.to_registration(),
            min_password_length=state.settings.min_password_length,
        )
    except RegistrationError as exc:
        raise HTTPException(status_code=400, detail={"code": exc.code, "message": exc.message}) from exc
    except SQLAlchemyError as exc:
        logger.exception("Error creating user")
        raise HTTPException(
            status_code=500,
            detail={"code": "internal_error", "message": "Failed to create user"},
        ) from exc
    logger.info("Created user %s", user.id)
    return UserResponse.from_user(user)


@router.post("/register", response_model=UserResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> UserResponse:
    """Create a new account.

    Requires email, password (>= 6 chars) and invite code. The response is
    the stored record without the password hash.
    """
    return create_account(request, body)


@router.post("/login", response_model=SessionResponse)
@limiter.limit("10/minute")  # [H2] below @router so the registered endpoint is the limited wrapper
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set the JWT cookie.

    Returns the same generic error for an unknown email and a wrong password
    ("bad_credentials") so the endpoint does not leak which accounts exist.
    """
    authenticator: Authenticator = request.app.state.authenticator
    sessions: SessionManager = request.app.state.sessions

    identity = authenticator.authenticate(body.email, body.password)
    if identity is None:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid email or password."}},
        )
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    token = sessions.issue(identity)
    session = sessions.resolve(token)
    resp = JSONResponse(status_code=200, content=SessionResponse.from_session(session).model_dump())
    sessions.set_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    logger.info("Login succeeded for user %s", identity.id)
    return resp


@router.post("/logout", response_model=MessageResponse)
async def logout(request: Request) -> JSONResponse:
    """Clear the session cookie. The token itself is not revoked server-side."""
    sessions: SessionManager = request.app.state.sessions
    resp = JSONResponse(content=MessageResponse(message="Logged out.").model_dump())
    sessions.clear_cookie(resp)
    return resp


@router.get("/session")
def get_session(request: Request) -> JSONResponse:
    """Return the materialized session, or an empty object when anonymous."""
    session = try_get_session(request)
    if session is None:
        return JSONResponse(content={})
    return JSONResponse(content=SessionResponse.from_session(session).model_dump())
