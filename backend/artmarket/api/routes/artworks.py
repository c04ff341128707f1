from decimal import Decimal
from typing import List, Literal, Optional
from fastapi import APIRouter, Depends, File as FastAPIFile, Response, UploadFile, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field, field_validator
from artmarket.core.database import get_db
from artmarket.models.user import User
from artmarket.api.dependencies import get_current_user, get_image_store, get_query_spec
from artmarket.api.schemas import (
    ArtworkDetail,
    ArtworkResponse,
    CommentResponse,
    collection,
    serialize,
    success,
)
from artmarket.services.artwork_service import artwork_service
from artmarket.services.comment_service import comment_service
from artmarket.services.query_builder import QuerySpec

router = APIRouter(prefix="/artworks", tags=["artworks"])

MAX_TAG_LENGTH = 30


class Dimensions(BaseModel):
    height: Optional[float] = Field(None, ge=0)
    width: Optional[float] = Field(None, ge=0)
    depth: Optional[float] = Field(None, ge=0)
    unit: Literal["cm", "in", "px"] = "cm"


def _normalize_tags(tags: Optional[List[str]]) -> Optional[List[str]]:
    if tags is None:
        return None
    normalized = []
    for tag in tags:
        tag = tag.strip().lower()
        if len(tag) > MAX_TAG_LENGTH:
            raise ValueError(f"Tags cannot exceed {MAX_TAG_LENGTH} characters")
        if tag and tag not in normalized:
            normalized.append(tag)
    return normalized


class ArtworkCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=1000)
    year: int
    medium: str = Field(..., min_length=1, max_length=50)
    tags: List[str] = []
    price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    dimensions: Optional[Dimensions] = None
    status: Literal["available", "not_for_sale"] = "available"

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, value):
        return _normalize_tags(value)


class ArtworkUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, min_length=1, max_length=1000)
    year: Optional[int] = None
    medium: Optional[str] = Field(None, min_length=1, max_length=50)
    tags: Optional[List[str]] = None
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    dimensions: Optional[Dimensions] = None
    status: Optional[str] = None
    # Accepted only so an attempt to reassign the artist can be refused
    artist_id: Optional[int] = None

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, value):
        return _normalize_tags(value)


class CommentCreate(BaseModel):
    text: str = Field(..., min_length=1, max_length=500)


@router.get("/")
async def list_artworks(
    spec: QuerySpec = Depends(get_query_spec),
    db: Session = Depends(get_db)
):
    """List artworks with filtering, search, sorting, projection and pagination"""
    artworks = artwork_service.list_artworks(db, spec)
    return collection("artworks", ArtworkResponse, artworks, spec)


@router.get("/search/{query}")
async def search_artworks(
    query: str,
    spec: QuerySpec = Depends(get_query_spec),
    db: Session = Depends(get_db)
):
    artworks = artwork_service.search_artworks(db, query, spec)
    return collection("artworks", ArtworkResponse, artworks, spec)


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_artwork(
    payload: ArtworkCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create an artwork owned by the current user (artist or admin)"""
    artwork = artwork_service.create_artwork(db, payload.model_dump(), current_user)
    return success(artwork=serialize(ArtworkResponse, artwork))


@router.get("/{artwork_id}")
async def get_artwork(artwork_id: int, db: Session = Depends(get_db)):
    artwork = artwork_service.get_artwork(db, artwork_id)
    return success(artwork=serialize(ArtworkDetail, artwork))


@router.patch("/{artwork_id}")
async def update_artwork(
    artwork_id: int,
    payload: ArtworkUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Update an artwork (owning artist or admin)"""
    artwork = artwork_service.update_artwork(
        db, artwork_id, payload.model_dump(exclude_unset=True, exclude_none=True), current_user)
    return success(artwork=serialize(ArtworkResponse, artwork))


@router.delete("/{artwork_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_artwork(
    artwork_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store=Depends(get_image_store)
):
    """Delete an artwork (owning artist or admin)"""
    artwork_service.delete_artwork(db, artwork_id, current_user, store)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{artwork_id}/image")
async def upload_artwork_image(
    artwork_id: int,
    file: UploadFile = FastAPIFile(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store=Depends(get_image_store)
):
    """Upload or replace the artwork's image (owning artist or admin)"""
    content = await file.read()
    artwork = artwork_service.upload_image(db, artwork_id, current_user, content, file.filename, store)
    return success(artwork=serialize(ArtworkResponse, artwork))


@router.post("/{artwork_id}/like")
async def like_artwork(
    artwork_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    likes = artwork_service.like_artwork(db, artwork_id, current_user)
    return {"status": "success", "message": "Artwork liked", "data": {"likes": likes}}


@router.delete("/{artwork_id}/like")
async def unlike_artwork(
    artwork_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    likes = artwork_service.unlike_artwork(db, artwork_id, current_user)
    return {"status": "success", "message": "Artwork unliked", "data": {"likes": likes}}


@router.get("/{artwork_id}/comments")
async def list_artwork_comments(
    artwork_id: int,
    spec: QuerySpec = Depends(get_query_spec),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    comments = comment_service.list_comments(db, spec, artwork_id=artwork_id)
    return collection("comments", CommentResponse, comments, spec)


@router.post("/{artwork_id}/comments", status_code=status.HTTP_201_CREATED)
async def create_artwork_comment(
    artwork_id: int,
    payload: CommentCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    comment = comment_service.create_comment(db, artwork_id, payload.text, current_user)
    return success(comment=serialize(CommentResponse, comment))
