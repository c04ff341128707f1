"""
Accounts: signup and login, profiles, admin user management and the
password lifecycle (forgot / reset / change).

Inactive (soft-deleted) users are filtered out of every default lookup.
Reset tokens are persisted only as their sha256 hash; an expired, reused or
unknown token all fail with the same error.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload
from artmarket.core.config import settings
from artmarket.core.errors import (
    AppError,
    ConflictError,
    ExternalServiceError,
    InvalidInputError,
    NotFoundError,
    UnauthorizedError,
)
from artmarket.core.permissions import Action, ResourceKind, ensure_allowed
from artmarket.core.security import (
    generate_reset_token,
    get_password_hash,
    hash_reset_token,
    utcnow,
    verify_password,
)
from artmarket.models.artwork import Artwork
from artmarket.models.associations import artwork_likes, exhibition_curators
from artmarket.models.comment import Comment
from artmarket.models.gallery import Gallery
from artmarket.models.order import Order
from artmarket.models.user import User, UserRole
from artmarket.services.notifier import NotificationKind
from artmarket.services.query_builder import QuerySpec

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8
SIGNUP_ROLES = frozenset({UserRole.VIEWER.value, UserRole.ARTIST.value})
ADMIN_FIELDS = frozenset({"name", "email", "bio", "role", "is_active"})
PASSWORD_FIELDS = ("password", "password_confirm", "current_password")

INVALID_RESET_TOKEN = "Token is invalid or has expired"


class ProfileUpdate(BaseModel):
    """Fields a user may change on their own profile; anything else is dropped"""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    bio: Optional[str] = Field(None, max_length=500)

    model_config = ConfigDict(extra="ignore")


def _validate_new_password(password: Optional[str], password_confirm: Optional[str]) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidInputError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if password != password_confirm:
        raise InvalidInputError("Passwords do not match")


def _validate_role(role: Any) -> str:
    try:
        return UserRole(role).value
    except ValueError:
        raise InvalidInputError(
            f"Invalid role specified. Allowed: {', '.join(r.value for r in UserRole)}")


class UserService:
    @staticmethod
    def _any_user(db: Session, user_id: int) -> User:
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError("No user found with that ID")
        return user

    @staticmethod
    def _ensure_email_free(db: Session, email: str, user_id: Optional[int] = None) -> None:
        query = db.query(User.id).filter(User.email == email)
        if user_id is not None:
            query = query.filter(User.id != user_id)
        if query.first():
            raise ConflictError("Email already registered")

    @staticmethod
    def _commit_user(db: Session, user: User) -> User:
        try:
            db.commit()
        except IntegrityError:
            # Two requests claimed the same email concurrently
            db.rollback()
            raise ConflictError("Email already registered")
        db.refresh(user)
        return user

    # --- Authentication ---

    @staticmethod
    def register(db: Session, data: Dict[str, Any], notifier) -> User:
        """Create a viewer or artist account and send a best-effort welcome mail"""
        _validate_new_password(data.get("password"), data.get("password_confirm"))
        role = _validate_role(data.get("role") or UserRole.VIEWER.value)
        if role not in SIGNUP_ROLES:
            raise InvalidInputError("You cannot sign up with that role")

        email = data["email"].lower()
        UserService._ensure_email_free(db, email)

        user = User(
            name=data["name"],
            email=email,
            hashed_password=get_password_hash(data["password"]),
            role=role,
        )
        db.add(user)
        UserService._commit_user(db, user)
        logger.info(f"User {user.id} signed up as {role}")

        if not notifier.send(user.email, NotificationKind.WELCOME, {"name": user.name}):
            logger.warning(f"Welcome notification for user {user.id} was not delivered")
        return user

    @staticmethod
    def authenticate(db: Session, email: str, password: str) -> User:
        # Same message for unknown email and wrong password
        user = (
            db.query(User)
            .filter(User.email == email.lower(), User.is_active.is_(True))
            .first()
        )
        if not user or not verify_password(password, user.hashed_password):
            raise UnauthorizedError("Incorrect email or password")
        return user

    # --- Profiles ---

    @staticmethod
    def get_profile(db: Session, user_id: int, actor: User) -> User:
        user = (
            db.query(User)
            .options(selectinload(User.artworks), selectinload(User.favorites))
            .filter(User.id == user_id, User.is_active.is_(True))
            .first()
        )
        if not user:
            raise NotFoundError("User not found")
        if actor.id != user.id:
            ensure_allowed(actor, ResourceKind.USER, Action.READ, user)
        return user

    @staticmethod
    def update_me(db: Session, actor: User, data: Dict[str, Any]) -> User:
        """
        Update the actor's own profile.

        Password fields are refused before anything else is looked at;
        passwords only change through the dedicated password routes.
        """
        if any(field in data for field in PASSWORD_FIELDS):
            raise InvalidInputError(
                "This route is not for password updates. Please use /users/update-my-password.")

        try:
            updates = ProfileUpdate.model_validate(data).model_dump(exclude_unset=True, exclude_none=True)
        except ValidationError as e:
            raise InvalidInputError(f"Invalid input data. {e.errors()[0]['msg']}")
        if "email" in updates:
            updates["email"] = updates["email"].lower()
            UserService._ensure_email_free(db, updates["email"], actor.id)

        for key, value in updates.items():
            setattr(actor, key, value)
        return UserService._commit_user(db, actor)

    @staticmethod
    def upload_profile_picture(db: Session, actor: User, file_bytes: bytes, filename: str, store) -> User:
        stored = store.store(file_bytes, filename)
        previous_id = actor.profile_picture_id
        actor.profile_picture_url = stored.url
        actor.profile_picture_id = stored.id
        db.commit()
        db.refresh(actor)

        if previous_id:
            try:
                store.delete(previous_id)
            except (AppError, OSError) as e:
                logger.warning(f"Could not delete profile picture {previous_id}: {str(e)}")
        return actor

    @staticmethod
    def deactivate(db: Session, actor: User) -> None:
        actor.is_active = False
        db.commit()
        logger.info(f"User {actor.id} deactivated their account")

    @staticmethod
    def list_my_artworks(db: Session, actor: User, spec: QuerySpec) -> List[Artwork]:
        query = db.query(Artwork).filter(Artwork.artist_id == actor.id)
        return spec.apply(query, Artwork).all()

    @staticmethod
    def list_my_favorites(db: Session, actor: User, spec: QuerySpec) -> List[Artwork]:
        query = (
            db.query(Artwork)
            .join(artwork_likes, artwork_likes.c.artwork_id == Artwork.id)
            .filter(artwork_likes.c.user_id == actor.id)
            .options(selectinload(Artwork.artist))
        )
        return spec.apply(query, Artwork).all()

    # --- Administration ---

    @staticmethod
    def list_users(db: Session, actor: User, spec: QuerySpec) -> List[User]:
        ensure_allowed(actor, ResourceKind.USER, Action.LIST)
        query = db.query(User).filter(User.is_active.is_(True))
        return spec.apply(query, User).all()

    @staticmethod
    def get_user(db: Session, user_id: int, actor: User) -> User:
        user = UserService._any_user(db, user_id)
        ensure_allowed(actor, ResourceKind.USER, Action.READ, user)
        return user

    @staticmethod
    def update_user(db: Session, user_id: int, data: Dict[str, Any], actor: User) -> User:
        user = UserService._any_user(db, user_id)
        ensure_allowed(actor, ResourceKind.USER, Action.UPDATE, user)

        if any(field in data for field in PASSWORD_FIELDS):
            raise InvalidInputError("Passwords cannot be changed through this route")

        updates = {key: value for key, value in data.items() if key in ADMIN_FIELDS}
        if "role" in updates:
            updates["role"] = _validate_role(updates["role"])
        if "email" in updates:
            updates["email"] = updates["email"].lower()
            UserService._ensure_email_free(db, updates["email"], user.id)

        for key, value in updates.items():
            setattr(user, key, value)
        return UserService._commit_user(db, user)

    @staticmethod
    def change_role(db: Session, user_id: int, new_role: Any, actor: User) -> User:
        user = UserService._any_user(db, user_id)
        ensure_allowed(actor, ResourceKind.USER, Action.CHANGE_ROLE, user)

        user.role = _validate_role(new_role)
        db.commit()
        db.refresh(user)
        logger.info(f"User {user.id} role changed to {user.role} by user {actor.id}")
        return user

    @staticmethod
    def delete_user(db: Session, user_id: int, actor: User) -> None:
        """
        Permanently delete a user.

        Orders are kept (their owner becomes null); comments and likes go
        with the user. Artists that still own artworks must be deactivated
        instead.
        """
        user = UserService._any_user(db, user_id)
        ensure_allowed(actor, ResourceKind.USER, Action.DELETE, user)

        if db.query(Artwork.id).filter(Artwork.artist_id == user.id).first():
            raise ConflictError("This user still owns artworks; deactivate the account instead")

        db.query(Order).filter(Order.user_id == user.id).update(
            {Order.user_id: None}, synchronize_session=False)
        db.query(Gallery).filter(Gallery.curator_id == user.id).update(
            {Gallery.curator_id: None}, synchronize_session=False)
        db.query(Comment).filter(Comment.user_id == user.id).delete(synchronize_session=False)
        db.execute(artwork_likes.delete().where(artwork_likes.c.user_id == user.id))
        db.execute(exhibition_curators.delete().where(exhibition_curators.c.user_id == user.id))
        db.delete(user)
        db.commit()
        logger.info(f"User {user_id} deleted by user {actor.id}")

    # --- Password lifecycle ---

    @staticmethod
    def forgot_password(db: Session, email: str, notifier) -> None:
        """Issue a reset token and deliver it; the token is withdrawn if delivery fails"""
        user = (
            db.query(User)
            .filter(User.email == email.lower(), User.is_active.is_(True))
            .first()
        )
        if not user:
            raise NotFoundError("There is no user with that email address")

        token, token_hash = generate_reset_token()
        user.password_reset_token = token_hash
        user.password_reset_expires = utcnow() + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES)
        db.commit()

        sent = notifier.send(user.email, NotificationKind.PASSWORD_RESET, {
            "name": user.name,
            "reset_url": f"{settings.CLIENT_URL}/reset-password/{token}",
            "expires_minutes": settings.PASSWORD_RESET_EXPIRE_MINUTES,
        })
        if not sent:
            user.password_reset_token = None
            user.password_reset_expires = None
            db.commit()
            raise ExternalServiceError("There was an error sending the email. Try again later!")

        logger.info(f"Password reset token issued for user {user.id}")

    @staticmethod
    def reset_password(db: Session, token: str, password: str, password_confirm: str) -> User:
        user = (
            db.query(User)
            .filter(
                User.password_reset_token == hash_reset_token(token or ""),
                User.password_reset_expires > utcnow(),
                User.is_active.is_(True),
            )
            .first()
        )
        if not user:
            raise InvalidInputError(INVALID_RESET_TOKEN)

        _validate_new_password(password, password_confirm)

        user.hashed_password = get_password_hash(password)
        user.password_reset_token = None
        user.password_reset_expires = None
        # Back-dated so a token issued right after the reset is still accepted
        user.password_changed_at = utcnow() - timedelta(seconds=1)
        db.commit()
        db.refresh(user)
        logger.info(f"Password reset for user {user.id}")
        return user

    @staticmethod
    def change_password(
        db: Session,
        actor: User,
        current_password: str,
        password: str,
        password_confirm: str,
    ) -> User:
        if not verify_password(current_password or "", actor.hashed_password):
            raise UnauthorizedError("Your current password is incorrect")
        _validate_new_password(password, password_confirm)

        actor.hashed_password = get_password_hash(password)
        actor.password_changed_at = utcnow() - timedelta(seconds=1)
        db.commit()
        db.refresh(actor)
        logger.info(f"Password changed for user {actor.id}")
        return actor


user_service = UserService()
