"""
api/main.py -- FastAPI application factory for Keyhole.

create_app(settings) builds the app from an explicit Settings object. The
auth collaborators (PasswordHasher, SessionManager, Authenticator, UserStore)
are constructed from that object and hung off app.state; nothing downstream
reads configuration on its own.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. log_requests           -- method, path, status, latency
  2. TrustedHostMiddleware  -- rejects requests with unexpected Host headers
  3. CORSMiddleware         -- answers preflights, adds CORS headers
  4. access_gate            -- allow-list policy; DENY -> 302 /login
  5. SlowAPIMiddleware      -- enforces per-route rate limits from api.limiter

Lifespan opens the user store on startup and disposes of it on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import quote

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse
from api.routes.auth import router as auth_router
from api.routes.v1.users import router as users_router
from auth.dependencies import resolve_session
from auth.passwords import PasswordHasher
from auth.policy import LOGIN_PATH, Decision, decide, is_static
from auth.store import UserStore
from auth.tokens import Authenticator, SessionManager
from core.config import Settings

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("keyhole.api")


def create_app(settings: Settings) -> FastAPI:
    """Build the API application around an explicit Settings object."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Open the user store for the server lifetime.

        Everything before yield runs on startup; everything after yield runs
        on shutdown, even if a request handler raised.
        """
        logger.info("Keyhole starting up")
        app.state.user_store = UserStore(settings.database_url)
        app.state.authenticator = Authenticator(app.state.user_store, app.state.hasher)
        logger.info("User store initialized")

        yield

        app.state.user_store.close()
        logger.info("Keyhole shutdown complete")

    app = FastAPI(
        title="Keyhole API",
        description="Account registration, credential login and session management.",
        version=VERSION,
        lifespan=lifespan,
        # /docs is a public product page rendered by web/, not Swagger UI.
        docs_url=None,
        redoc_url=None,
    )

    app.state.settings = settings
    app.state.hasher = PasswordHasher(rounds=settings.bcrypt_rounds)
    app.state.sessions = SessionManager(settings)

    # -----------------------------------------------------------------------
    # Middleware stack
    #
    # add_middleware() wraps the current stack, so the LAST one added is the
    # outermost. Register innermost-first:
    #   SlowAPI -> access_gate -> CORS -> TrustedHost -> log_requests.
    # @app.middleware("http") goes through add_middleware() too, so its
    # position is set by where the decorator runs.
    # -----------------------------------------------------------------------

    limiter.enabled = settings.rate_limit_enabled
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)

    # -----------------------------------------------------------------------
    # Access gate
    #
    # Runs before every route handler but after host checking and CORS
    # preflight handling. Static assets bypass it entirely; everything else
    # gets the session resolved once and the pure policy applied. The
    # resolved session is left on request.state so handlers and dependencies
    # do not verify the JWT a second time.
    # -----------------------------------------------------------------------

    @app.middleware("http")
    async def access_gate(request: Request, call_next):
        path = request.url.path
        if is_static(path):
            return await call_next(request)
        session = resolve_session(request)
        request.state.session = session
        if decide(path, session) is Decision.DENY:
            return RedirectResponse(f"{LOGIN_PATH}?next={quote(path)}", status_code=302)
        return await call_next(request)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=3600,
    )

    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

    # -----------------------------------------------------------------------
    # Request logging middleware
    # -----------------------------------------------------------------------

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        ms = (time.perf_counter() - start) * 1000
        logger.info(
            "%s %s %d %.1fms %s",
            request.method,
            request.url.path,
            response.status_code,
            ms,
            request.client.host if request.client else "unknown",
        )
        return response

    # -----------------------------------------------------------------------
    # Router registration
    # -----------------------------------------------------------------------

    app.include_router(auth_router, prefix="/api/auth", tags=["Auth"])
    app.include_router(users_router, prefix="/api/v1", tags=["Users"])
    # Web UI router is mounted by asgi.py, not here.

    _register_exception_handlers(app)
    return app


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        """Return 429 with a structured error and a Retry-After header."""
        retry_after = int(getattr(exc, "retry_after", 60))
        response = JSONResponse(
            status_code=429,
            content=ErrorResponse(
                error=ErrorDetail(
                    code="rate_limited",
                    message="Too many requests.",
                    detail=str(exc),
                )
            ).model_dump(),
        )
        response.headers["Retry-After"] = str(retry_after)
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Return 400 when the request body is not even shaped like the model.

        Only the field path and a short message per problem are reported; the
        offending input and pydantic's internal context are left out.
        """
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(
                error=ErrorDetail(
                    code="validation_error",
                    message="Request validation failed.",
                    detail=_summarize_validation_errors(exc),
                )
            ).model_dump(),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        """Return a structured error for all FastAPI/Starlette HTTP exceptions.

        Route handlers raise HTTPException with detail={"code", "message"}.
        When detail is already a dict, use it directly as the error field
        rather than stringifying it.
        """
        if isinstance(exc.detail, dict):
            return JSONResponse(
                status_code=exc.status_code,
                content={"error": exc.detail},
                headers=getattr(exc, "headers", None),
            )
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=ErrorDetail(
                    code=f"http_{exc.status_code}",
                    message=str(exc.detail),
                )
            ).model_dump(),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all handler for unexpected server errors.

        The raw exception is logged server-side only; the client receives a
        generic message.
        """
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error=ErrorDetail(
                    code="internal_error",
                    message="An unexpected error occurred.",
                )
            ).model_dump(),
        )


def _summarize_validation_errors(exc: RequestValidationError) -> str:
    """Render "field: message" pairs, e.g. "password: Input should be a valid string"."""
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body") or "body"
        parts.append(f"{loc}: {err.get('msg', 'invalid value')}")
    return "; ".join(parts)
