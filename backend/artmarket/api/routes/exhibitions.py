from datetime import datetime
from typing import List, Literal, Optional
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, ConfigDict, Field
from artmarket.core.database import get_db
from artmarket.models.user import User
from artmarket.api.dependencies import get_current_user, get_query_spec
from artmarket.api.schemas import ArtworkSummary, GallerySummary, UserSummary, collection, serialize, success
from artmarket.services.exhibition_service import exhibition_service
from artmarket.services.query_builder import QuerySpec

router = APIRouter(prefix="/exhibitions", tags=["exhibitions"])

ExhibitionStatusLiteral = Literal["upcoming", "ongoing", "past"]


class ExhibitionCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=150)
    description: str = Field(..., min_length=1, max_length=2000)
    start_date: datetime
    end_date: datetime
    gallery_id: Optional[int] = None
    # Derived from the dates when omitted
    status: Optional[ExhibitionStatusLiteral] = None
    theme: Optional[str] = None
    virtual_tour_link: Optional[str] = None
    featured_image_url: Optional[str] = None
    featured_artwork_ids: List[int] = []
    curator_ids: List[int] = []


class ExhibitionUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=150)
    description: Optional[str] = Field(None, min_length=1, max_length=2000)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    gallery_id: Optional[int] = None
    status: Optional[ExhibitionStatusLiteral] = None
    theme: Optional[str] = None
    virtual_tour_link: Optional[str] = None
    featured_image_url: Optional[str] = None
    featured_artwork_ids: Optional[List[int]] = None
    curator_ids: Optional[List[int]] = None


class ExhibitionResponse(BaseModel):
    id: int
    title: str
    description: str
    start_date: datetime
    end_date: datetime
    gallery_id: Optional[int] = None
    status: str
    theme: Optional[str] = None
    virtual_tour_link: Optional[str] = None
    featured_image_url: Optional[str] = None
    featured_artworks: List[ArtworkSummary] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ExhibitionDetail(ExhibitionResponse):
    gallery: Optional[GallerySummary] = None
    curators: List[UserSummary] = []


@router.get("/")
async def list_exhibitions(
    spec: QuerySpec = Depends(get_query_spec),
    db: Session = Depends(get_db)
):
    exhibitions = exhibition_service.list_exhibitions(db, spec)
    return collection("exhibitions", ExhibitionResponse, exhibitions, spec)


@router.get("/{exhibition_id}")
async def get_exhibition(exhibition_id: int, db: Session = Depends(get_db)):
    exhibition = exhibition_service.get_exhibition(db, exhibition_id)
    return success(exhibition=serialize(ExhibitionDetail, exhibition))


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_exhibition(
    payload: ExhibitionCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create an exhibition (admin)"""
    exhibition = exhibition_service.create_exhibition(db, payload.model_dump(), current_user)
    return success(exhibition=serialize(ExhibitionDetail, exhibition))


@router.patch("/{exhibition_id}")
async def update_exhibition(
    exhibition_id: int,
    payload: ExhibitionUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Update an exhibition (admin)"""
    exhibition = exhibition_service.update_exhibition(
        db, exhibition_id, payload.model_dump(exclude_unset=True), current_user)
    return success(exhibition=serialize(ExhibitionDetail, exhibition))


@router.delete("/{exhibition_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_exhibition(
    exhibition_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Delete an exhibition (admin)"""
    exhibition_service.delete_exhibition(db, exhibition_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
