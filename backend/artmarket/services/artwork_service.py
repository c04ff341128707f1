import logging
from typing import Any, Dict, List
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, selectinload
from artmarket.core.errors import AppError, ConflictError, InvalidInputError, NotFoundError
from artmarket.core.permissions import Action, ResourceKind, ensure_allowed
from artmarket.models.artwork import Artwork, ArtworkStatus
from artmarket.models.associations import artwork_likes, gallery_artworks, exhibition_artworks
from artmarket.models.order import OrderItem
from artmarket.models.user import User
from artmarket.services.query_builder import QuerySpec

logger = logging.getLogger(__name__)

# Fields an owner may change after creation; the artist is fixed
UPDATABLE_FIELDS = frozenset({
    "title", "description", "year", "medium", "tags", "price", "dimensions", "status",
})


class ArtworkService:
    @staticmethod
    def _get_or_404(db: Session, artwork_id: int) -> Artwork:
        artwork = db.query(Artwork).filter(Artwork.id == artwork_id).first()
        if not artwork:
            raise NotFoundError("Artwork not found")
        return artwork

    @staticmethod
    def create_artwork(db: Session, data: Dict[str, Any], actor: User) -> Artwork:
        """Create an artwork owned by `actor`"""
        ensure_allowed(actor, ResourceKind.ARTWORK, Action.CREATE)

        if data.get("status") == ArtworkStatus.SOLD.value:
            raise InvalidInputError("An artwork cannot be created as sold")

        fields = {key: value for key, value in data.items() if key in UPDATABLE_FIELDS}
        artwork = Artwork(**fields, artist_id=actor.id)
        db.add(artwork)
        db.commit()
        db.refresh(artwork)

        logger.info(f"Artwork {artwork.id} created by user {actor.id}")
        return artwork

    @staticmethod
    def list_artworks(db: Session, spec: QuerySpec) -> List[Artwork]:
        query = db.query(Artwork).options(selectinload(Artwork.artist))
        return spec.apply(query, Artwork).all()

    @staticmethod
    def search_artworks(db: Session, term: str, spec: QuerySpec) -> List[Artwork]:
        return ArtworkService.list_artworks(db, spec.search(term))

    @staticmethod
    def get_artwork(db: Session, artwork_id: int) -> Artwork:
        artwork = (
            db.query(Artwork)
            .options(joinedload(Artwork.artist), joinedload(Artwork.gallery))
            .filter(Artwork.id == artwork_id)
            .first()
        )
        if not artwork:
            raise NotFoundError("Artwork not found")
        return artwork

    @staticmethod
    def update_artwork(db: Session, artwork_id: int, data: Dict[str, Any], actor: User) -> Artwork:
        """
        Update an artwork's whitelisted fields.

        `sold` is reserved for payment reconciliation: clients can neither
        set it nor move a sold artwork back to another status.
        """
        artwork = ArtworkService._get_or_404(db, artwork_id)
        ensure_allowed(actor, ResourceKind.ARTWORK, Action.UPDATE, artwork)

        if "artist_id" in data or "artist" in data:
            raise InvalidInputError("The artist of an artwork cannot be changed")

        new_status = data.get("status")
        if new_status is not None and new_status != artwork.status:
            if new_status == ArtworkStatus.SOLD.value:
                raise InvalidInputError("Artworks are marked sold only when an order is paid")
            if artwork.status == ArtworkStatus.SOLD.value:
                raise ConflictError("A sold artwork cannot change status")

        values = {key: value for key, value in data.items() if key in UPDATABLE_FIELDS}
        if "status" in values:
            # The webhook may sell the artwork after it was loaded above
            updated = (
                db.query(Artwork)
                .filter(Artwork.id == artwork_id, Artwork.status != ArtworkStatus.SOLD.value)
                .update(values, synchronize_session=False)
            )
            if updated == 0:
                db.rollback()
                raise ConflictError("A sold artwork cannot change status")
        else:
            for key, value in values.items():
                setattr(artwork, key, value)

        db.commit()
        db.refresh(artwork)
        return artwork

    @staticmethod
    def delete_artwork(db: Session, artwork_id: int, actor: User, store) -> None:
        artwork = ArtworkService._get_or_404(db, artwork_id)
        ensure_allowed(actor, ResourceKind.ARTWORK, Action.DELETE, artwork)

        if artwork.status == ArtworkStatus.SOLD.value:
            raise ConflictError("A sold artwork cannot be deleted")

        image_id = artwork.image_id

        # Withdraw from sale first so a concurrent fulfilment cannot claim it
        withdrawn = (
            db.query(Artwork)
            .filter(Artwork.id == artwork_id, Artwork.status != ArtworkStatus.SOLD.value)
            .update({Artwork.status: ArtworkStatus.NOT_FOR_SALE.value}, synchronize_session=False)
        )
        if withdrawn == 0:
            db.rollback()
            raise ConflictError("A sold artwork cannot be deleted")

        db.execute(artwork_likes.delete().where(artwork_likes.c.artwork_id == artwork.id))
        db.execute(gallery_artworks.delete().where(gallery_artworks.c.artwork_id == artwork.id))
        db.execute(exhibition_artworks.delete().where(exhibition_artworks.c.artwork_id == artwork.id))
        # Order history keeps its snapshot
        db.query(OrderItem).filter(OrderItem.artwork_id == artwork.id).update(
            {OrderItem.artwork_id: None}, synchronize_session=False)
        db.delete(artwork)
        db.commit()
        logger.info(f"Artwork {artwork_id} deleted by user {actor.id}")

        if image_id:
            ArtworkService._discard_image(store, image_id)

    @staticmethod
    def _discard_image(store, image_id: str) -> None:
        try:
            store.delete(image_id)
        except (AppError, OSError) as e:
            logger.warning(f"Could not delete image {image_id}: {str(e)}")

    @staticmethod
    def upload_image(
        db: Session,
        artwork_id: int,
        actor: User,
        file_bytes: bytes,
        filename: str,
        store,
    ) -> Artwork:
        """Store a new image for the artwork and drop the previous one"""
        artwork = ArtworkService._get_or_404(db, artwork_id)
        ensure_allowed(actor, ResourceKind.ARTWORK, Action.UPDATE, artwork)

        stored = store.store(file_bytes, filename)
        previous_id = artwork.image_id
        artwork.image_url = stored.url
        artwork.image_id = stored.id
        db.commit()
        db.refresh(artwork)

        if previous_id and previous_id != stored.id:
            ArtworkService._discard_image(store, previous_id)
        return artwork

    @staticmethod
    def likes_count(db: Session, artwork_id: int) -> int:
        return (
            db.query(func.count())
            .select_from(artwork_likes)
            .filter(artwork_likes.c.artwork_id == artwork_id)
            .scalar()
        )

    @staticmethod
    def like_artwork(db: Session, artwork_id: int, actor: User) -> int:
        """Add `actor` to the artwork's likes; liking twice is a no-op"""
        artwork = ArtworkService._get_or_404(db, artwork_id)
        ensure_allowed(actor, ResourceKind.ARTWORK, Action.LIKE, artwork)

        already_liked = (
            db.query(artwork_likes.c.user_id)
            .filter(artwork_likes.c.user_id == actor.id,
                    artwork_likes.c.artwork_id == artwork.id)
            .first()
        )
        if not already_liked:
            try:
                db.execute(artwork_likes.insert().values(user_id=actor.id, artwork_id=artwork.id))
                db.commit()
            except IntegrityError:
                # A concurrent like from the same user won the insert
                db.rollback()

        return ArtworkService.likes_count(db, artwork.id)

    @staticmethod
    def unlike_artwork(db: Session, artwork_id: int, actor: User) -> int:
        """Remove `actor` from the artwork's likes; a no-op if not liked"""
        artwork = ArtworkService._get_or_404(db, artwork_id)
        ensure_allowed(actor, ResourceKind.ARTWORK, Action.LIKE, artwork)

        db.execute(
            artwork_likes.delete().where(
                artwork_likes.c.user_id == actor.id,
                artwork_likes.c.artwork_id == artwork.id,
            )
        )
        db.commit()
        return ArtworkService.likes_count(db, artwork.id)


artwork_service = ArtworkService()
