from typing import Optional
from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from artmarket.core.database import get_db
from artmarket.core.errors import UnauthorizedError
from artmarket.core.security import decode_access_token
from artmarket.models.user import User
from artmarket.services.notifier import notifier
from artmarket.services.payments import payment_provider
from artmarket.services.query_builder import QuerySpec
from artmarket.storage.image_store import image_store

# OAuth2 password bearer scheme - extracts token from Authorization header
# tokenUrl tells FastAPI where to find the login endpoint for Swagger UI
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/auth/login", auto_error=False)


def _user_from_token(token: str, db: Session) -> User:
    payload = decode_access_token(token)
    if payload is None:
        raise UnauthorizedError("Invalid token. Please log in again!")

    # JWT standard uses 'sub' (subject) claim for user identifier
    try:
        user_id = int(payload.get("sub"))
    except (ValueError, TypeError):
        raise UnauthorizedError("Invalid token. Please log in again!")

    # Deactivated accounts are treated like deleted ones
    user = db.query(User).filter(User.id == user_id, User.is_active.is_(True)).first()
    if user is None:
        raise UnauthorizedError("The user belonging to this token no longer exists.")

    issued_at = payload.get("iat")
    if issued_at is None or user.changed_password_after(int(issued_at)):
        raise UnauthorizedError("User recently changed password! Please log in again.")

    return user


async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> User:
    """
    Get current authenticated user from JWT token.

    Raises UnauthorizedError (401) when the token is missing, invalid,
    expired, belongs to an inactive user or predates a password change.
    """
    if token is None:
        raise UnauthorizedError("You are not logged in! Please log in to get access.")
    return _user_from_token(token, db)


# Collaborators are injected so tests can swap them with dependency_overrides
def get_payment_provider():
    return payment_provider


def get_notifier():
    return notifier


def get_image_store():
    return image_store


def get_query_spec(request: Request) -> QuerySpec:
    """Filter / search / sort / projection / pagination from the query string"""
    return QuerySpec.from_params(dict(request.query_params))
