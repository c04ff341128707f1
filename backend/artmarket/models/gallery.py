from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from artmarket.core.database import Base
from artmarket.models.associations import gallery_artworks


class Gallery(Base):
    """
    A named, ordered collection of artworks, optionally with a curator.

    Membership rows (with their position) are written by gallery_service;
    the relationship below is read-only.
    """
    __tablename__ = "galleries"

    __searchable__ = ("name", "description")

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(String(1000), nullable=True)
    curator_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    featured_image_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    curator = relationship("User")
    artworks = relationship(
        "Artwork",
        secondary=gallery_artworks,
        order_by=gallery_artworks.c.position,
        viewonly=True,
    )
