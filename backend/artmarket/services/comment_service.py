import logging
from typing import List
from sqlalchemy.orm import Session, joinedload
from artmarket.core.errors import NotFoundError
from artmarket.core.permissions import Action, ResourceKind, ensure_allowed
from artmarket.models.artwork import Artwork
from artmarket.models.comment import Comment
from artmarket.models.user import User
from artmarket.services.query_builder import QuerySpec

logger = logging.getLogger(__name__)


class CommentService:
    @staticmethod
    def _ensure_artwork(db: Session, artwork_id: int) -> None:
        if not db.query(Artwork.id).filter(Artwork.id == artwork_id).first():
            raise NotFoundError("Artwork not found")

    @staticmethod
    def _get_or_404(db: Session, comment_id: int) -> Comment:
        comment = (
            db.query(Comment)
            .options(joinedload(Comment.author))
            .filter(Comment.id == comment_id)
            .first()
        )
        if not comment:
            raise NotFoundError("No comment found with that ID")
        return comment

    @staticmethod
    def list_comments(db: Session, spec: QuerySpec, artwork_id: int | None = None) -> List[Comment]:
        """Comments, optionally limited to one artwork (which must exist)"""
        query = db.query(Comment).options(joinedload(Comment.author))
        if artwork_id is not None:
            CommentService._ensure_artwork(db, artwork_id)
            query = query.filter(Comment.artwork_id == artwork_id)
        return spec.apply(query, Comment).all()

    @staticmethod
    def get_comment(db: Session, comment_id: int) -> Comment:
        return CommentService._get_or_404(db, comment_id)

    @staticmethod
    def create_comment(db: Session, artwork_id: int, text: str, actor: User) -> Comment:
        ensure_allowed(actor, ResourceKind.COMMENT, Action.CREATE)
        CommentService._ensure_artwork(db, artwork_id)

        comment = Comment(text=text, artwork_id=artwork_id, user_id=actor.id)
        db.add(comment)
        db.commit()
        return CommentService._get_or_404(db, comment.id)

    @staticmethod
    def update_comment(db: Session, comment_id: int, text: str, actor: User) -> Comment:
        comment = CommentService._get_or_404(db, comment_id)
        ensure_allowed(actor, ResourceKind.COMMENT, Action.UPDATE, comment)

        comment.text = text
        db.commit()
        return CommentService._get_or_404(db, comment.id)

    @staticmethod
    def delete_comment(db: Session, comment_id: int, actor: User) -> None:
        comment = CommentService._get_or_404(db, comment_id)
        ensure_allowed(actor, ResourceKind.COMMENT, Action.DELETE, comment)

        db.delete(comment)
        db.commit()
        logger.info(f"Comment {comment_id} deleted by user {actor.id}")


comment_service = CommentService()
