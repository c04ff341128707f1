"""
Database models.

Importing this package registers every table on Base.metadata and lets
string-based relationships resolve.
"""

from artmarket.models.associations import (
    artwork_likes,
    gallery_artworks,
    exhibition_artworks,
    exhibition_curators,
)
from artmarket.models.user import User, UserRole
from artmarket.models.artwork import Artwork, ArtworkStatus
from artmarket.models.gallery import Gallery
from artmarket.models.exhibition import Exhibition, ExhibitionStatus
from artmarket.models.comment import Comment
from artmarket.models.order import Order, OrderItem, OrderStatus, PaymentStatus

__all__ = [
    "artwork_likes",
    "gallery_artworks",
    "exhibition_artworks",
    "exhibition_curators",
    "User",
    "UserRole",
    "Artwork",
    "ArtworkStatus",
    "Gallery",
    "Exhibition",
    "ExhibitionStatus",
    "Comment",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentStatus",
]
