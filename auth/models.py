"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic beyond trivial
projections). Stores, the session manager and routes do the work.

Four shapes flow through the auth boundary:
  User         -- the persisted record, including the password hash.
  Identity     -- what Authenticator returns on a successful credential check.
  TokenClaims  -- what is signed into the JWT; the stateless session.
  Session      -- the externally visible session object materialized from claims.

Layer rule: no imports from api/, web/, or core/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A registered account.

    id is a 12-character URL-safe string assigned at creation (auth.ids).
    email is unique and compared case-sensitively, exactly as stored.
    password holds the bcrypt hash, never the plaintext; it may be empty for
    records imported without a credential, in which case login always fails.
    """

    id: str
    email: str
    password: str | None = None
    first_name: str = ""
    last_name: str = ""
    invite_code: str = ""
    is_email_verified: bool = False
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class Identity:
    """Result of a successful credential check."""

    id: str
    email: str
    name: str = ""


@dataclass(frozen=True)
class TokenClaims:
    """Claims carried by a signed session token.

    iat / exp are UNIX timestamps (seconds). id is the stable subject
    identifier copied from the Identity at issue time.
    """

    id: str
    email: str
    name: str
    iat: int
    exp: int


@dataclass(frozen=True)
class SessionUser:
    id: str
    email: str
    name: str = ""


@dataclass(frozen=True)
class Session:
    """The session as exposed to route handlers, templates and API clients.

    expires is an ISO 8601 UTC timestamp.
    """

    user: SessionUser
    expires: str
