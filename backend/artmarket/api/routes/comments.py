from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from artmarket.core.database import get_db
from artmarket.models.user import User
from artmarket.api.dependencies import get_current_user, get_query_spec
from artmarket.api.schemas import CommentResponse, collection, serialize, success
from artmarket.services.comment_service import comment_service
from artmarket.services.query_builder import QuerySpec

# Comments on a specific artwork are created under /artworks/{id}/comments
router = APIRouter(prefix="/comments", tags=["comments"])


class CommentUpdate(BaseModel):
    text: str = Field(..., min_length=1, max_length=500)


@router.get("/")
async def list_comments(
    spec: QuerySpec = Depends(get_query_spec),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    comments = comment_service.list_comments(db, spec)
    return collection("comments", CommentResponse, comments, spec)


@router.get("/{comment_id}")
async def get_comment(
    comment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    comment = comment_service.get_comment(db, comment_id)
    return success(comment=serialize(CommentResponse, comment))


@router.patch("/{comment_id}")
async def update_comment(
    comment_id: int,
    payload: CommentUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Edit a comment (author or admin)"""
    comment = comment_service.update_comment(db, comment_id, payload.text, current_user)
    return success(comment=serialize(CommentResponse, comment))


@router.delete("/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_comment(
    comment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Delete a comment (author or admin)"""
    comment_service.delete_comment(db, comment_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
