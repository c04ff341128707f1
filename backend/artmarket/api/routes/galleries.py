from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, ConfigDict, Field
from artmarket.core.database import get_db
from artmarket.models.user import User
from artmarket.api.dependencies import get_current_user, get_query_spec
from artmarket.api.schemas import ArtworkSummary, UserSummary, collection, serialize, success
from artmarket.services.gallery_service import gallery_service
from artmarket.services.query_builder import QuerySpec

router = APIRouter(prefix="/galleries", tags=["galleries"])


class GalleryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    curator_id: Optional[int] = None
    featured_image_url: Optional[str] = None
    # Ordered; position in the list is the display order
    artwork_ids: List[int] = []


class GalleryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    curator_id: Optional[int] = None
    featured_image_url: Optional[str] = None
    artwork_ids: Optional[List[int]] = None


class GalleryResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    curator_id: Optional[int] = None
    featured_image_url: Optional[str] = None
    artworks: List[ArtworkSummary] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class GalleryDetail(GalleryResponse):
    curator: Optional[UserSummary] = None


@router.get("/")
async def list_galleries(
    spec: QuerySpec = Depends(get_query_spec),
    db: Session = Depends(get_db)
):
    galleries = gallery_service.list_galleries(db, spec)
    return collection("galleries", GalleryResponse, galleries, spec)


@router.get("/{gallery_id}")
async def get_gallery(gallery_id: int, db: Session = Depends(get_db)):
    gallery = gallery_service.get_gallery(db, gallery_id)
    return success(gallery=serialize(GalleryDetail, gallery))


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_gallery(
    payload: GalleryCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create a gallery (admin)"""
    gallery = gallery_service.create_gallery(db, payload.model_dump(), current_user)
    return success(gallery=serialize(GalleryDetail, gallery))


@router.patch("/{gallery_id}")
async def update_gallery(
    gallery_id: int,
    payload: GalleryUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Update a gallery (admin); artwork_ids replaces the ordered list"""
    gallery = gallery_service.update_gallery(
        db, gallery_id, payload.model_dump(exclude_unset=True), current_user)
    return success(gallery=serialize(GalleryDetail, gallery))


@router.delete("/{gallery_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_gallery(
    gallery_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Delete a gallery (admin)"""
    gallery_service.delete_gallery(db, gallery_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
