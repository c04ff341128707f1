"""
Response models shared by several routers, plus the JSON envelope helpers.

Every success response is `{"status": "success", "data": {...}}`;
collections also carry `results`, the number of items returned.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Type
from pydantic import BaseModel, ConfigDict
from artmarket.services.query_builder import QuerySpec


class UserSummary(BaseModel):
    id: int
    name: str
    bio: Optional[str] = None
    profile_picture_url: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    role: str
    bio: Optional[str] = None
    profile_picture_url: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class GallerySummary(BaseModel):
    id: int
    name: str
    description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ArtworkSummary(BaseModel):
    id: int
    title: str
    artist_id: int
    image_url: Optional[str] = None
    price: float
    status: str

    model_config = ConfigDict(from_attributes=True)


class ArtworkResponse(BaseModel):
    id: int
    title: str
    description: str
    artist_id: int
    artist: Optional[UserSummary] = None
    year: int
    medium: str
    tags: List[str] = []
    image_url: Optional[str] = None
    price: float
    dimensions: Optional[Dict[str, Any]] = None
    status: str
    likes_count: int = 0
    gallery_id: Optional[int] = None
    exhibition_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ArtworkDetail(ArtworkResponse):
    gallery: Optional[GallerySummary] = None


class UserProfile(UserResponse):
    artworks: List[ArtworkSummary] = []
    favorites: List[ArtworkSummary] = []


class CommentResponse(BaseModel):
    id: int
    text: str
    artwork_id: int
    user_id: int
    author: Optional[UserSummary] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class OrderItemResponse(BaseModel):
    id: int
    artwork_id: Optional[int] = None
    artist_id: Optional[int] = None
    title: str
    price: float

    model_config = ConfigDict(from_attributes=True)


class OrderResponse(BaseModel):
    id: int
    user_id: Optional[int] = None
    items: List[OrderItemResponse] = []
    total_amount: float
    currency: str
    shipping_address: Optional[Dict[str, Any]] = None
    status: str
    payment_method: str
    payment_status: str
    stripe_session_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


def serialize(schema: Type[BaseModel], obj: Any) -> Dict[str, Any]:
    return schema.model_validate(obj).model_dump(mode="json")


def success(**data) -> Dict[str, Any]:
    return {"status": "success", "data": data}


def collection(
    name: str,
    schema: Type[BaseModel],
    items: Iterable[Any],
    spec: Optional[QuerySpec] = None,
) -> Dict[str, Any]:
    """Envelope for a list result, with the requested field projection applied"""
    rows = [serialize(schema, item) for item in items]
    if spec is not None:
        rows = [spec.project(row) for row in rows]
    return {"status": "success", "results": len(rows), "data": {name: rows}}
