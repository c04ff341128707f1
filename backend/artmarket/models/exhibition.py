import enum
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from artmarket.core.database import Base
from artmarket.models.associations import exhibition_artworks, exhibition_curators


class ExhibitionStatus(str, enum.Enum):
    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    PAST = "past"


class Exhibition(Base):
    __tablename__ = "exhibitions"
    __table_args__ = (
        CheckConstraint("end_date > start_date", name="ck_exhibitions_dates"),
    )

    __searchable__ = ("title", "description")

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(150), unique=True, nullable=False)
    description = Column(String(2000), nullable=False)
    start_date = Column(DateTime(timezone=True), nullable=False, index=True)
    end_date = Column(DateTime(timezone=True), nullable=False, index=True)
    gallery_id = Column(Integer, ForeignKey("galleries.id", ondelete="SET NULL"), nullable=True)
    status = Column(String(20), nullable=False,
                    default=ExhibitionStatus.UPCOMING.value, index=True)
    theme = Column(String, nullable=True)
    virtual_tour_link = Column(String, nullable=True)
    featured_image_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    gallery = relationship("Gallery")
    featured_artworks = relationship("Artwork", secondary=exhibition_artworks)
    curators = relationship("User", secondary=exhibition_curators)
