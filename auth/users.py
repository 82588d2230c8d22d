"""
auth/users.py -- The single validated code path for creating accounts.

Both POST /api/auth/register and POST /api/v1/users (and the web register
form) call register_user(), so every account gets the same checks, the same
bcrypt cost and the same id format.

Errors are raised as RegistrationError subclasses carrying a stable
machine-readable code; route handlers map them to 400 responses. Anything
the store raises other than an email conflict propagates unchanged and is
reported as a generic 500 by the caller.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError

from auth.ids import generate_id
from auth.models import User
from auth.passwords import PasswordHasher
from auth.store import UserStore


class RegistrationError(ValueError):
    code = "invalid_registration"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class MissingFieldsError(RegistrationError):
    code = "missing_fields"


class PasswordTooShortError(RegistrationError):
    code = "password_too_short"


class EmailExistsError(RegistrationError):
    code = "email_exists"


@dataclass
class Registration:
    """Raw registration input. Any field may be missing."""

    email: str | None = None
    password: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    invite_code: str | None = None


def validate_registration(data: Registration, min_password_length: int = 6) -> None:
    """Raise a RegistrationError if the input cannot become an account."""
    if not data.email or not data.password or not data.invite_code:
        raise MissingFieldsError("Missing required fields")
    if len(data.password) < min_password_length:
        raise PasswordTooShortError(f"Password must be at least {min_password_length} characters")


def register_user(
    store: UserStore,
    hasher: PasswordHasher,
    data: Registration,
    min_password_length: int = 6,
) -> User:
    """Validate, hash and persist a new account; return the stored User.

    The returned record still carries the password hash -- API code maps it
    to api.models.UserResponse, which has no password field.
    """
    validate_registration(data, min_password_length)
    user = User(
        id=generate_id(),
        email=data.email,
        password=hasher.hash(data.password),
        first_name=data.first_name or "",
        last_name=data.last_name or "",
        invite_code=data.invite_code,
        is_email_verified=False,
    )
    try:
        return store.create_user(user)
    except IntegrityError as exc:
        # The id is 71 bits of randomness; a UNIQUE failure here is the email.
        raise EmailExistsError("Email already exists") from exc
