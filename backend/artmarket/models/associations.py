from sqlalchemy import Column, Integer, ForeignKey, Table, DateTime
from sqlalchemy.sql import func
from artmarket.core.database import Base

# Like/favorite set: one row per (user, artwork); the composite primary key
# makes "like" an insert-if-absent and "unlike" a plain delete
artwork_likes = Table(
    "artwork_likes",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("artwork_id", Integer, ForeignKey("artworks.id", ondelete="CASCADE"), primary_key=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
)

# Ordered artwork collection of a gallery
gallery_artworks = Table(
    "gallery_artworks",
    Base.metadata,
    Column("gallery_id", Integer, ForeignKey("galleries.id", ondelete="CASCADE"), primary_key=True),
    Column("artwork_id", Integer, ForeignKey("artworks.id", ondelete="CASCADE"), primary_key=True),
    Column("position", Integer, nullable=False, default=0),
)

exhibition_artworks = Table(
    "exhibition_artworks",
    Base.metadata,
    Column("exhibition_id", Integer, ForeignKey("exhibitions.id", ondelete="CASCADE"), primary_key=True),
    Column("artwork_id", Integer, ForeignKey("artworks.id", ondelete="CASCADE"), primary_key=True),
)

exhibition_curators = Table(
    "exhibition_curators",
    Base.metadata,
    Column("exhibition_id", Integer, ForeignKey("exhibitions.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)
