import enum
from sqlalchemy import Column, Integer, String, DateTime, Boolean
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from artmarket.core.database import Base
from artmarket.core.security import as_utc
from artmarket.models.associations import artwork_likes


class UserRole(str, enum.Enum):
    VIEWER = "viewer"
    ARTIST = "artist"
    ADMIN = "admin"


class User(Base):
    """
    User model representing application users.

    Stores authentication credentials and profile information.
    Passwords and reset tokens are stored as hashes (never plaintext).
    """
    __tablename__ = "users"

    # Columns that must never be filtered, sorted or projected from user input
    __query_hidden__ = frozenset({
        "hashed_password",
        "password_reset_token",
        "password_reset_expires",
        "password_changed_at",
    })

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    # Email is unique and indexed for fast lookups during login
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    role = Column(String(20), nullable=False, default=UserRole.VIEWER.value, index=True)
    bio = Column(String(500), nullable=True)
    profile_picture_url = Column(String, nullable=True)
    profile_picture_id = Column(String, nullable=True)
    # is_active allows soft-deleting users without removing data
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    password_changed_at = Column(DateTime(timezone=True), nullable=True)
    # sha256 of the emailed reset token
    password_reset_token = Column(String(64), nullable=True, index=True)
    password_reset_expires = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Owned artworks are the inverse of Artwork.artist_id, so creating an
    # artwork is a single insert
    artworks = relationship("Artwork", back_populates="artist")
    # Writes go through the artwork_likes table directly
    favorites = relationship(
        "Artwork", secondary=artwork_likes, back_populates="liked_by", viewonly=True)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    def changed_password_after(self, issued_at: int) -> bool:
        """True if the password changed after a token issued at `issued_at` (unix seconds)"""
        changed_at = as_utc(self.password_changed_at)
        if changed_at is None:
            return False
        return issued_at < int(changed_at.timestamp())
