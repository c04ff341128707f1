import logging
from typing import Any, Dict, List, Optional, Sequence
from sqlalchemy.orm import Session, joinedload, selectinload
from artmarket.core.errors import ConflictError, InvalidInputError, NotFoundError
from artmarket.core.permissions import Action, ResourceKind, ensure_allowed
from artmarket.models.artwork import Artwork
from artmarket.models.associations import gallery_artworks
from artmarket.models.exhibition import Exhibition
from artmarket.models.gallery import Gallery
from artmarket.models.user import User
from artmarket.services.query_builder import QuerySpec

logger = logging.getLogger(__name__)

GALLERY_FIELDS = frozenset({"name", "description", "curator_id", "featured_image_url"})


def existing_artwork_ids(db: Session, artwork_ids: Sequence[int]) -> List[int]:
    """Deduplicate `artwork_ids` keeping order; every id must exist"""
    ordered = list(dict.fromkeys(artwork_ids))
    if not ordered:
        return []
    found = {artwork_id for (artwork_id,) in db.query(Artwork.id).filter(Artwork.id.in_(ordered))}
    missing = [artwork_id for artwork_id in ordered if artwork_id not in found]
    if missing:
        raise InvalidInputError(f"Unknown artwork ids: {', '.join(str(i) for i in missing)}")
    return ordered


def ensure_active_user(db: Session, user_id: Optional[int], label: str) -> None:
    if user_id is None:
        return
    if not db.query(User.id).filter(User.id == user_id, User.is_active.is_(True)).first():
        raise InvalidInputError(f"Unknown {label} id: {user_id}")


class GalleryService:
    @staticmethod
    def _get_or_404(db: Session, gallery_id: int) -> Gallery:
        gallery = db.query(Gallery).filter(Gallery.id == gallery_id).first()
        if not gallery:
            raise NotFoundError("No gallery found with that ID")
        return gallery

    @staticmethod
    def _ensure_name_free(db: Session, name: str, gallery_id: Optional[int] = None) -> None:
        query = db.query(Gallery.id).filter(Gallery.name == name)
        if gallery_id is not None:
            query = query.filter(Gallery.id != gallery_id)
        if query.first():
            raise ConflictError(f"A gallery named '{name}' already exists")

    @staticmethod
    def _set_artworks(db: Session, gallery: Gallery, artwork_ids: Sequence[int]) -> None:
        """Replace the gallery's ordered artwork list and keep Artwork.gallery_id in sync"""
        ordered = existing_artwork_ids(db, artwork_ids)

        db.execute(gallery_artworks.delete().where(gallery_artworks.c.gallery_id == gallery.id))
        db.query(Artwork).filter(Artwork.gallery_id == gallery.id).update(
            {Artwork.gallery_id: None}, synchronize_session=False)

        if ordered:
            # An artwork hangs in one gallery at a time
            db.execute(gallery_artworks.delete().where(gallery_artworks.c.artwork_id.in_(ordered)))
            db.execute(gallery_artworks.insert(), [
                {"gallery_id": gallery.id, "artwork_id": artwork_id, "position": position}
                for position, artwork_id in enumerate(ordered)
            ])
            db.query(Artwork).filter(Artwork.id.in_(ordered)).update(
                {Artwork.gallery_id: gallery.id}, synchronize_session=False)

    @staticmethod
    def list_galleries(db: Session, spec: QuerySpec) -> List[Gallery]:
        query = db.query(Gallery).options(selectinload(Gallery.artworks))
        return spec.apply(query, Gallery).all()

    @staticmethod
    def get_gallery(db: Session, gallery_id: int) -> Gallery:
        gallery = (
            db.query(Gallery)
            .options(selectinload(Gallery.artworks), joinedload(Gallery.curator))
            .filter(Gallery.id == gallery_id)
            .first()
        )
        if not gallery:
            raise NotFoundError("No gallery found with that ID")
        return gallery

    @staticmethod
    def create_gallery(db: Session, data: Dict[str, Any], actor: User) -> Gallery:
        ensure_allowed(actor, ResourceKind.GALLERY, Action.CREATE)
        GalleryService._ensure_name_free(db, data["name"])
        ensure_active_user(db, data.get("curator_id"), "curator")

        gallery = Gallery(**{key: value for key, value in data.items() if key in GALLERY_FIELDS})
        db.add(gallery)
        db.flush()
        GalleryService._set_artworks(db, gallery, data.get("artwork_ids") or [])
        db.commit()

        logger.info(f"Gallery {gallery.id} created by user {actor.id}")
        return GalleryService.get_gallery(db, gallery.id)

    @staticmethod
    def update_gallery(db: Session, gallery_id: int, data: Dict[str, Any], actor: User) -> Gallery:
        gallery = GalleryService._get_or_404(db, gallery_id)
        ensure_allowed(actor, ResourceKind.GALLERY, Action.UPDATE, gallery)

        if data.get("name") is not None:
            GalleryService._ensure_name_free(db, data["name"], gallery.id)
        if "curator_id" in data:
            ensure_active_user(db, data["curator_id"], "curator")

        for key, value in data.items():
            if key in GALLERY_FIELDS and not (key == "name" and value is None):
                setattr(gallery, key, value)
        if data.get("artwork_ids") is not None:
            GalleryService._set_artworks(db, gallery, data["artwork_ids"])
        db.commit()

        return GalleryService.get_gallery(db, gallery.id)

    @staticmethod
    def delete_gallery(db: Session, gallery_id: int, actor: User) -> None:
        """Delete a gallery; its artworks and exhibitions stay, without the reference"""
        gallery = GalleryService._get_or_404(db, gallery_id)
        ensure_allowed(actor, ResourceKind.GALLERY, Action.DELETE, gallery)

        db.execute(gallery_artworks.delete().where(gallery_artworks.c.gallery_id == gallery.id))
        db.query(Artwork).filter(Artwork.gallery_id == gallery.id).update(
            {Artwork.gallery_id: None}, synchronize_session=False)
        db.query(Exhibition).filter(Exhibition.gallery_id == gallery.id).update(
            {Exhibition.gallery_id: None}, synchronize_session=False)
        db.delete(gallery)
        db.commit()
        logger.info(f"Gallery {gallery_id} deleted by user {actor.id}")


gallery_service = GalleryService()
