import enum
from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Numeric, JSON, CheckConstraint,
    select, func,
)
from sqlalchemy.orm import relationship, column_property
from artmarket.core.database import Base
from artmarket.models.associations import artwork_likes


class ArtworkStatus(str, enum.Enum):
    AVAILABLE = "available"
    SOLD = "sold"
    NOT_FOR_SALE = "not_for_sale"


class Artwork(Base):
    """
    Artwork listed on the marketplace.

    The artist is set at creation and never changes. `status` only becomes
    "sold" through payment reconciliation.
    """
    __tablename__ = "artworks"
    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_artworks_price_non_negative"),
    )

    # Fields covered by full-text search
    __searchable__ = ("title", "description", "tags")

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(100), nullable=False, index=True)
    description = Column(String(1000), nullable=False)
    artist_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    year = Column(Integer, nullable=False, index=True)
    medium = Column(String(50), nullable=False, index=True)
    # Lower-cased tag strings
    tags = Column(JSON, nullable=False, default=list)
    image_url = Column(String, nullable=True)
    image_id = Column(String, nullable=True)
    price = Column(Numeric(10, 2), nullable=False, index=True)
    # {"height": .., "width": .., "depth": .., "unit": "cm" | "in" | "px"}
    dimensions = Column(JSON, nullable=True)
    status = Column(String(20), nullable=False,
                    default=ArtworkStatus.AVAILABLE.value, index=True)
    gallery_id = Column(Integer, ForeignKey("galleries.id", ondelete="SET NULL"), nullable=True)
    exhibition_id = Column(Integer, ForeignKey("exhibitions.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Derived from the like set so it can never drift from it
    likes_count = column_property(
        select(func.count(artwork_likes.c.user_id))
        .where(artwork_likes.c.artwork_id == id)
        .correlate_except(artwork_likes)
        .scalar_subquery()
    )

    artist = relationship("User", back_populates="artworks")
    gallery = relationship("Gallery", foreign_keys=[gallery_id])
    exhibition = relationship("Exhibition", foreign_keys=[exhibition_id])
    liked_by = relationship(
        "User", secondary=artwork_likes, back_populates="favorites", viewonly=True)
    comments = relationship(
        "Comment", back_populates="artwork", cascade="all, delete-orphan")
