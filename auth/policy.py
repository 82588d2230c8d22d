"""
auth/policy.py -- Path-based access policy for the request gate.

decide() is a pure function of (path, identity): it never touches the
request, the store or the clock, so it is tested in isolation from the
transport layer. api.main wires it into an HTTP middleware that turns
DENY into a redirect to /login.

Rules, in order:
  1. Static assets are never evaluated (SKIP).
  2. Exact public pages are allowed.
  3. Public API prefixes are allowed (prefix match, not segment match).
  4. Everything else requires a resolved identity.
"""

from __future__ import annotations

from enum import Enum

PUBLIC_PATHS: frozenset[str] = frozenset(
    {
        "/",
        "/login",
        "/register",
        "/reset-password",
        "/privacy",
        "/terms",
        "/docs",
    }
)

PUBLIC_API_PREFIXES: tuple[str, ...] = ("/api/auth", "/api/v1/users")

STATIC_PREFIXES: tuple[str, ...] = ("/static/",)
STATIC_PATHS: frozenset[str] = frozenset({"/favicon.ico", "/robots.txt"})

LOGIN_PATH = "/login"


class Decision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"
    SKIP = "skip"  # not subject to the policy at all


def is_static(path: str) -> bool:
    return path in STATIC_PATHS or path.startswith(STATIC_PREFIXES)


def is_public(path: str) -> bool:
    return path in PUBLIC_PATHS or path.startswith(PUBLIC_API_PREFIXES)


def decide(path: str, identity: object | None) -> Decision:
    """Return the gate decision for a request path and resolved identity.

    identity is whatever the session resolver produced; only its presence
    matters here.
    """
    if is_static(path):
        return Decision.SKIP
    if is_public(path):
        return Decision.ALLOW
    return Decision.ALLOW if identity is not None else Decision.DENY
