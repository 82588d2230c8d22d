"""
auth/tokens.py -- Credential checks, JWT session tokens, and the session cookie.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with Settings.secret_key and
       carry the subject id, email, display name, iat and exp. Nothing is
       stored server-side; logout simply drops the cookie. Verification
       returns None on any failure -- the caller treats that as anonymous.

  Passwords: bcrypt through auth.passwords.PasswordHasher. Authenticator
       always runs one bcrypt comparison, against a dummy hash when the
       email is unknown, so response time does not reveal whether an
       account exists [C1].

  Configuration: SessionManager and Authenticator receive their settings at
       construction. Nothing here reads the environment or a module-level
       settings singleton.

Layer rule: no imports from api/ or web/. Import from core/ is allowed --
core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from jose import JWTError, jwt

from auth.models import Identity, Session, SessionUser, TokenClaims
from auth.passwords import PasswordHasher

if TYPE_CHECKING:
    from auth.store import UserStore
    from core.config import Settings

logger = logging.getLogger("keyhole.auth")

_ALGORITHM = "HS256"

COOKIE_NAME = "access_token"


# ---------------------------------------------------------------------------
# Authentication (constant-time) [C1]
# ---------------------------------------------------------------------------


class Authenticator:
    """Check an email/password pair against the user store.

    Fails closed: every failure mode returns None rather than raising, so
    route code has exactly one branch to handle.
    """

    def __init__(self, store: UserStore, hasher: PasswordHasher) -> None:
        self.store = store
        self.hasher = hasher

    def authenticate(self, email: str | None, password: str | None) -> Identity | None:
        """Return the Identity for valid credentials, None otherwise.

        None is returned when email or password is missing, when no user has
        that email, when the record has no password hash, or when the hash
        does not match. Unknown users still cost one bcrypt run [C1].
        """
        if not email or not password:
            return None
        user = self.store.get_by_email(email)
        if user is None or not user.password:
            # Equalize timing -- do NOT return before running bcrypt [C1]
            self.hasher.verify(password, self.hasher.dummy_hash)
            return None
        if not self.hasher.verify(password, user.password):
            return None
        return Identity(id=user.id, email=user.email, name=user.display_name)


# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------


class SessionManager:
    """Issue and resolve stateless, signed session tokens.

    Two hooks shape what a session carries:
      claims_for()   -- token enrichment: copies the fresh identity into claims.
      materialize()  -- session materialization: copies the token's subject
                        into the externally visible Session.user.
    """

    def __init__(self, settings: Settings) -> None:
        self._secret = settings.secret_key
        self.expire_seconds = settings.token_expire_seconds
        self.secure_cookies = settings.secure_cookies

    def claims_for(self, identity: Identity, now: datetime | None = None) -> TokenClaims:
        issued = int((now or datetime.now(timezone.utc)).timestamp())
        return TokenClaims(
            id=identity.id,
            email=identity.email,
            name=identity.name,
            iat=issued,
            exp=issued + self.expire_seconds,
        )

    def issue(self, identity: Identity, now: datetime | None = None) -> str:
        """Encode a signed JWT for the given identity."""
        claims = self.claims_for(identity, now)
        payload = {
            "sub": claims.id,
            "id": claims.id,
            "email": claims.email,
            "name": claims.name,
            "iat": claims.iat,
            "exp": claims.exp,
        }
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)

    def decode(self, token: str | None) -> TokenClaims | None:
        """Verify a JWT and return its claims, or None on any failure.

        Expired, tampered, wrongly-signed and malformed tokens all come back
        as None; so do tokens missing the subject id or an expiry.
        """
        if not token:
            return None
        try:
            payload = jwt.decode(token, self._secret, algorithms=[_ALGORITHM])
        except JWTError:
            return None
        subject = payload.get("id")
        if not isinstance(subject, str) or not subject or "exp" not in payload:
            return None
        return TokenClaims(
            id=subject,
            email=str(payload.get("email", "")),
            name=str(payload.get("name", "")),
            iat=int(payload.get("iat", 0)),
            exp=int(payload["exp"]),
        )

    def materialize(self, claims: TokenClaims) -> Session:
        expires = datetime.fromtimestamp(claims.exp, tz=timezone.utc).isoformat()
        return Session(
            user=SessionUser(id=claims.id, email=claims.email, name=claims.name),
            expires=expires,
        )

    def resolve(self, token: str | None) -> Session | None:
        """Token string -> Session, or None for anonymous."""
        claims = self.decode(token)
        return self.materialize(claims) if claims is not None else None

    # -----------------------------------------------------------------------
    # Cookie helpers
    # -----------------------------------------------------------------------

    def set_cookie(self, response, token: str) -> None:
        """Write the session token as an httpOnly cookie on the response.

        httponly=True: JS cannot read the cookie (XSS mitigation).
        samesite="lax": not sent on cross-site POST (CSRF mitigation).
        max_age matches the JWT expiry so both lapse together.
        """
        response.set_cookie(
            COOKIE_NAME,
            value=token,
            httponly=True,
            samesite="lax",
            secure=self.secure_cookies,
            max_age=self.expire_seconds,
        )

    def clear_cookie(self, response) -> None:
        response.delete_cookie(COOKIE_NAME, httponly=True, samesite="lax", secure=self.secure_cookies)
