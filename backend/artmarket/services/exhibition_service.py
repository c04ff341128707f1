import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from sqlalchemy import and_
from sqlalchemy.orm import Session, joinedload, selectinload
from artmarket.core.errors import ConflictError, InvalidInputError, NotFoundError
from artmarket.core.permissions import Action, ResourceKind, ensure_allowed
from artmarket.core.security import as_utc, utcnow
from artmarket.models.artwork import Artwork
from artmarket.models.exhibition import Exhibition, ExhibitionStatus
from artmarket.models.gallery import Gallery
from artmarket.models.user import User
from artmarket.services.gallery_service import ensure_active_user, existing_artwork_ids
from artmarket.services.query_builder import QuerySpec

logger = logging.getLogger(__name__)

EXHIBITION_FIELDS = frozenset({
    "title", "description", "start_date", "end_date", "gallery_id", "status",
    "theme", "virtual_tour_link", "featured_image_url",
})
REQUIRED_FIELDS = ("title", "description", "start_date", "end_date")


def derive_status(start_date: datetime, end_date: datetime, now: Optional[datetime] = None) -> str:
    """Status implied by the exhibition dates at `now`"""
    now = now or utcnow()
    if now < as_utc(start_date):
        return ExhibitionStatus.UPCOMING.value
    if now > as_utc(end_date):
        return ExhibitionStatus.PAST.value
    return ExhibitionStatus.ONGOING.value


def _normalize_dates(data: Dict[str, Any]) -> Dict[str, Any]:
    # Stored in UTC; naive input is taken as UTC
    data = dict(data)
    for key in ("start_date", "end_date"):
        if data.get(key) is not None:
            data[key] = as_utc(data[key]).astimezone(timezone.utc)
    return data


def _validate_dates(start_date: datetime, end_date: datetime) -> None:
    if as_utc(end_date) <= as_utc(start_date):
        raise InvalidInputError("End date must be after start date")


def _validate_status(status: Any) -> str:
    try:
        return ExhibitionStatus(status).value
    except ValueError:
        raise InvalidInputError(
            f"Invalid status. Allowed: {', '.join(s.value for s in ExhibitionStatus)}")


class ExhibitionService:
    @staticmethod
    def _get_or_404(db: Session, exhibition_id: int) -> Exhibition:
        exhibition = db.query(Exhibition).filter(Exhibition.id == exhibition_id).first()
        if not exhibition:
            raise NotFoundError("No exhibition found with that ID")
        return exhibition

    @staticmethod
    def _ensure_title_free(db: Session, title: str, exhibition_id: Optional[int] = None) -> None:
        query = db.query(Exhibition.id).filter(Exhibition.title == title)
        if exhibition_id is not None:
            query = query.filter(Exhibition.id != exhibition_id)
        if query.first():
            raise ConflictError(f"An exhibition titled '{title}' already exists")

    @staticmethod
    def _apply_references(db: Session, exhibition: Exhibition, data: Dict[str, Any]) -> None:
        if data.get("gallery_id") is not None:
            if not db.query(Gallery.id).filter(Gallery.id == data["gallery_id"]).first():
                raise InvalidInputError(f"Unknown gallery id: {data['gallery_id']}")

        if data.get("featured_artwork_ids") is not None:
            ids = existing_artwork_ids(db, data["featured_artwork_ids"])
            exhibition.featured_artworks = (
                db.query(Artwork).filter(Artwork.id.in_(ids)).all() if ids else [])

        if data.get("curator_ids") is not None:
            curator_ids = list(dict.fromkeys(data["curator_ids"]))
            for user_id in curator_ids:
                ensure_active_user(db, user_id, "curator")
            exhibition.curators = (
                db.query(User).filter(User.id.in_(curator_ids)).all() if curator_ids else [])

    @staticmethod
    def list_exhibitions(db: Session, spec: QuerySpec) -> List[Exhibition]:
        query = db.query(Exhibition).options(selectinload(Exhibition.featured_artworks))
        return spec.apply(query, Exhibition).all()

    @staticmethod
    def get_exhibition(db: Session, exhibition_id: int) -> Exhibition:
        exhibition = (
            db.query(Exhibition)
            .options(
                selectinload(Exhibition.featured_artworks),
                selectinload(Exhibition.curators),
                joinedload(Exhibition.gallery),
            )
            .filter(Exhibition.id == exhibition_id)
            .first()
        )
        if not exhibition:
            raise NotFoundError("No exhibition found with that ID")
        return exhibition

    @staticmethod
    def create_exhibition(db: Session, data: Dict[str, Any], actor: User) -> Exhibition:
        ensure_allowed(actor, ResourceKind.EXHIBITION, Action.CREATE)
        data = _normalize_dates(data)
        _validate_dates(data["start_date"], data["end_date"])
        ExhibitionService._ensure_title_free(db, data["title"])

        fields = {key: value for key, value in data.items() if key in EXHIBITION_FIELDS}
        if fields.get("status") is None:
            fields["status"] = derive_status(data["start_date"], data["end_date"])
        else:
            fields["status"] = _validate_status(fields["status"])

        exhibition = Exhibition(**fields)
        ExhibitionService._apply_references(db, exhibition, data)
        db.add(exhibition)
        db.commit()

        logger.info(f"Exhibition {exhibition.id} created by user {actor.id}")
        return ExhibitionService.get_exhibition(db, exhibition.id)

    @staticmethod
    def update_exhibition(db: Session, exhibition_id: int, data: Dict[str, Any], actor: User) -> Exhibition:
        exhibition = ExhibitionService._get_or_404(db, exhibition_id)
        ensure_allowed(actor, ResourceKind.EXHIBITION, Action.UPDATE, exhibition)
        cleared = [key for key in REQUIRED_FIELDS if key in data and data[key] is None]
        if cleared:
            raise InvalidInputError(f"Exhibition {', '.join(cleared)} cannot be empty")
        data = _normalize_dates(data)

        start_date = data.get("start_date") or exhibition.start_date
        end_date = data.get("end_date") or exhibition.end_date
        _validate_dates(start_date, end_date)
        if data.get("title") is not None:
            ExhibitionService._ensure_title_free(db, data["title"], exhibition.id)

        for key, value in data.items():
            if key in EXHIBITION_FIELDS and key != "status":
                setattr(exhibition, key, value)
        if data.get("status") is not None:
            exhibition.status = _validate_status(data["status"])
        elif "start_date" in data or "end_date" in data:
            exhibition.status = derive_status(start_date, end_date)

        ExhibitionService._apply_references(db, exhibition, data)
        db.commit()
        return ExhibitionService.get_exhibition(db, exhibition.id)

    @staticmethod
    def delete_exhibition(db: Session, exhibition_id: int, actor: User) -> None:
        exhibition = ExhibitionService._get_or_404(db, exhibition_id)
        ensure_allowed(actor, ResourceKind.EXHIBITION, Action.DELETE, exhibition)

        db.query(Artwork).filter(Artwork.exhibition_id == exhibition.id).update(
            {Artwork.exhibition_id: None}, synchronize_session=False)
        exhibition.featured_artworks = []
        exhibition.curators = []
        db.delete(exhibition)
        db.commit()
        logger.info(f"Exhibition {exhibition_id} deleted by user {actor.id}")

    @staticmethod
    def refresh_exhibition_statuses(db: Session, now: Optional[datetime] = None) -> int:
        """Bring every exhibition's status in line with its dates; returns rows changed"""
        now = now or utcnow()
        windows = {
            ExhibitionStatus.UPCOMING.value: Exhibition.start_date > now,
            ExhibitionStatus.ONGOING.value: and_(Exhibition.start_date <= now, Exhibition.end_date >= now),
            ExhibitionStatus.PAST.value: Exhibition.end_date < now,
        }
        changed = 0
        for status, window in windows.items():
            changed += (
                db.query(Exhibition)
                .filter(window, Exhibition.status != status)
                .update({Exhibition.status: status}, synchronize_session=False)
            )
        db.commit()
        if changed:
            logger.info(f"Refreshed status of {changed} exhibitions")
        return changed


exhibition_service = ExhibitionService()
