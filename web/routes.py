"""
web/routes.py -- Jinja2 template routes for the Keyhole web UI.

These routes serve server-rendered HTML. They share app.state with the API
routes (same user store, hasher and session manager) but return HTML and
redirects instead of JSON.

Routes:
  GET  /           -- landing page
  GET  /docs       -- API reference page
  GET  /login      -- login form
  POST /login      -- handle password login
  GET  /register   -- registration form
  POST /register   -- create the account, sign in, redirect /dashboard
  GET  /dashboard  -- signed-in landing page (auth required)
  GET  /logout     -- clear cookie, bounce to /login after a short delay
"""

import logging
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.exc import SQLAlchemyError

from auth.dependencies import try_get_session
from auth.models import Identity
from auth.tokens import Authenticator, SessionManager
from auth.users import Registration, RegistrationError, register_user

logger = logging.getLogger("keyhole.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
router = APIRouter()

_LOGOUT_REDIRECT_SECONDS = 2

# Never a post-login target: landing there would drop the new session.
_NO_RETURN_PATHS = frozenset({"/logout"})

# Whitelist mapping for ?error= query params on /login [M3].
# The raw query param is NEVER passed to templates -- only the message from
# this dict is. Prevents reflected XSS via crafted error query strings.
_ERROR_MESSAGES: dict[str, str] = {
    "bad_credentials": "Invalid email or password.",
}

# RegistrationError.code -> message shown on the register form.
_REGISTER_MESSAGES: dict[str, str] = {
    "missing_fields": "Email, password and invite code are required.",
    "password_too_short": "Password must be at least {n} characters.",
    "email_exists": "An account with that email already exists.",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _safe_next(next_url: Optional[str]) -> str:
    """Validate a post-login redirect target. Only accept relative paths. [C2]

    Rejects absolute URLs and protocol-relative ones ("//evil.example"), both
    of which would send the user off-site after login, and /logout.
    """
    if next_url and next_url.startswith("/") and not next_url.startswith("//"):
        if urlsplit(next_url).path.rstrip("/") not in _NO_RETURN_PATHS:
            return next_url
    return "/dashboard"


def _signed_in_redirect(request: Request, identity: Identity, target: str) -> RedirectResponse:
    sessions: SessionManager = request.app.state.sessions
    resp = RedirectResponse(target, status_code=302)
    sessions.set_cookie(resp, sessions.issue(identity))
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Public pages
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def home(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(request, "index.html", {"session": try_get_session(request)})


@router.get("/docs", response_class=HTMLResponse)
def docs(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(request, "docs.html", {"session": try_get_session(request)})


# ---------------------------------------------------------------------------
# Login / register
# ---------------------------------------------------------------------------


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request) -> HTMLResponse:
    """Render the login page. Already-signed-in users go straight to the dashboard."""
    if try_get_session(request) is not None:
        return RedirectResponse("/dashboard", status_code=302)

    error_msg = _ERROR_MESSAGES.get(request.query_params.get("error", ""))
    return templates.TemplateResponse(
        request,
        "login.html",
        {"error_msg": error_msg, "next": _safe_next(request.query_params.get("next"))},
    )


@router.post("/login", response_class=HTMLResponse)
def login_post(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    next_url: str = Form("", alias="next"),
) -> RedirectResponse:
    """Handle the login form submission."""
    authenticator: Authenticator = request.app.state.authenticator
    identity = authenticator.authenticate(email, password)  # [C1] timing equalization
    if identity is None:
        return RedirectResponse("/login?error=bad_credentials", status_code=302)
    return _signed_in_redirect(request, identity, _safe_next(next_url or request.query_params.get("next")))


@router.get("/register", response_class=HTMLResponse)
def register_form(request: Request) -> HTMLResponse:
    if try_get_session(request) is not None:
        return RedirectResponse("/dashboard", status_code=302)
    return templates.TemplateResponse(request, "register.html", {"error_msg": None, "form": {}})


@router.post("/register", response_class=HTMLResponse)
def register_post(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    first_name: str = Form(""),
    last_name: str = Form(""),
    invite_code: str = Form(""),
) -> HTMLResponse:
    """Create the account, then sign the new user in.

    Validation failures re-render the form with a 400 and keep what the user
    typed (except the password).
    """
    state = request.app.state
    data = Registration(
        email=email.strip(),
        password=password,
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        invite_code=invite_code.strip(),
    )
    form = {
        "email": data.email,
        "first_name": data.first_name,
        "last_name": data.last_name,
        "invite_code": data.invite_code,
    }

    try:
        user = register_user(
            state.user_store,
            state.hasher,
            data,
            min_password_length=state.settings.min_password_length,
        )
    except RegistrationError as exc:
        message = _REGISTER_MESSAGES.get(exc.code, exc.message).format(n=state.settings.min_password_length)
        return templates.TemplateResponse(
            request, "register.html", {"error_msg": message, "form": form}, status_code=400
        )
    except SQLAlchemyError:
        logger.exception("Error creating user from register form")
        return templates.TemplateResponse(
            request,
            "register.html",
            {"error_msg": "Registration failed. Please try again.", "form": form},
            status_code=500,
        )

    logger.info("Created user %s via register form", user.id)
    identity = Identity(id=user.id, email=user.email, name=user.display_name)
    return _signed_in_redirect(request, identity, "/dashboard")


# ---------------------------------------------------------------------------
# Signed-in pages
# ---------------------------------------------------------------------------


@router.get("/dashboard", response_class=HTMLResponse)
def dashboard(request: Request) -> HTMLResponse:
    """Render the dashboard with the session's email and display name.

    The access gate already redirects anonymous requests; the check here keeps
    the page safe if it is ever mounted without the gate.
    """
    session = try_get_session(request)
    if session is None:
        return RedirectResponse("/login", status_code=302)
    return templates.TemplateResponse(request, "dashboard.html", {"session": session})


@router.get("/logout", response_class=HTMLResponse)
def logout(request: Request) -> HTMLResponse:
    """Clear the session cookie and show a short "logging out" page.

    The page refreshes to /login after _LOGOUT_REDIRECT_SECONDS.
    """
    sessions: SessionManager = request.app.state.sessions
    resp = templates.TemplateResponse(
        request,
        "logout.html",
        {"delay": _LOGOUT_REDIRECT_SECONDS, "target": "/login"},
    )
    sessions.clear_cookie(resp)
    return resp
