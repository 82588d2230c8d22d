"""
API request and response models for Keyhole REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Session, User
from auth.users import Registration

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/auth/register and POST /api/v1/users.

    Every field is optional at the schema level so that a missing field
    reaches register_user() and comes back as a 400 missing_fields error
    rather than a schema error. Browser clients send camelCase names; both
    spellings are accepted. password has no length cap here: bcrypt reads
    only the first 72 bytes and PasswordHasher truncates to that.
    """

    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = None
    first_name: Optional[str] = Field(default=None, alias="firstName", max_length=100)
    last_name: Optional[str] = Field(default=None, alias="lastName", max_length=100)
    invite_code: Optional[str] = Field(default=None, alias="inviteCode", max_length=100)

    def to_registration(self) -> Registration:
        return Registration(
            email=self.email,
            password=self.password,
            first_name=self.first_name,
            last_name=self.last_name,
            invite_code=self.invite_code,
        )


class LoginRequest(BaseModel):
    """Request body for POST /api/auth/login."""

    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """A user record as returned to clients. There is no password field."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    first_name: str
    last_name: str
    invite_code: str
    is_email_verified: bool
    created_at: str
    updated_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            invite_code=user.invite_code,
            is_email_verified=user.is_email_verified,
            created_at=user.created_at or "",
            updated_at=user.updated_at or "",
        )


class SessionUserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: str


class SessionResponse(BaseModel):
    """Response for GET /api/auth/session and POST /api/auth/login."""

    model_config = ConfigDict(frozen=True)

    user: SessionUserResponse
    expires: str

    @classmethod
    def from_session(cls, session: Session) -> "SessionResponse":
        return cls(
            user=SessionUserResponse(id=session.user.id, email=session.user.email, name=session.user.name),
            expires=session.expires,
        )


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail
