"""
api/routes/v1/users.py -- User account REST endpoints.

Routes:
  POST   /api/v1/users        -- create an account (same validation as register)
  DELETE /api/v1/users/{id}   -- delete your own account

/api/v1/users is on the access policy's public prefix list, so the gate
never redirects these requests. Creation is public and runs the same
registration path as /api/auth/register. Deletion enforces its own check:
the caller must hold a session whose subject id equals {id}.

Auth policy:
  - POST   /api/v1/users:       public
  - DELETE /api/v1/users/{id}:  requires auth (get_current_session) + ownership
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import SQLAlchemyError

from api.models import MessageResponse, RegisterRequest, UserResponse
from api.routes.auth import create_account
from auth.dependencies import get_current_session
from auth.models import Session
from auth.store import UserNotFoundError, UserStore

logger = logging.getLogger("keyhole.api.users")

router = APIRouter()


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(request: Request, body: RegisterRequest) -> UserResponse:
    """Create a new account through the shared registration path."""
    return create_account(request, body)


@router.delete("/users/{user_id}", response_model=MessageResponse)
def delete_user(
    request: Request,
    user_id: str,
    session: Session = Depends(get_current_session),
) -> MessageResponse:
    """Delete an account. Only the account's own session may do this [IDOR guard].

    401 without a session, 403 for someone else's id, 404 when the caller's
    own record no longer exists, 500 on any other store failure.
    """
    if session.user.id != user_id:
        logger.warning("User %s attempted to delete user %s", session.user.id, user_id)
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "You can only delete your own account."},
        )

    user_store: UserStore = request.app.state.user_store
    try:
        user_store.delete_user(user_id)
    except UserNotFoundError as exc:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "User not found."},
        ) from exc
    except SQLAlchemyError as exc:
        logger.exception("Error deleting user %s", user_id)
        raise HTTPException(
            status_code=500,
            detail={"code": "internal_error", "message": "Failed to delete user"},
        ) from exc

    logger.info("Deleted user %s", user_id)
    return MessageResponse(message="User deleted successfully")
