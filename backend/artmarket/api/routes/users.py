from typing import Any, Dict, Literal, Optional
from fastapi import APIRouter, Body, Depends, File as FastAPIFile, Response, UploadFile, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, EmailStr, Field
from artmarket.core.database import get_db
from artmarket.models.user import User
from artmarket.api.dependencies import get_current_user, get_image_store, get_query_spec
from artmarket.api.routes.auth import issue_token
from artmarket.api.schemas import (
    ArtworkResponse,
    UserProfile,
    UserResponse,
    collection,
    serialize,
    success,
)
from artmarket.services.query_builder import QuerySpec
from artmarket.services.user_service import user_service

router = APIRouter(prefix="/users", tags=["users"])


class UpdatePasswordRequest(BaseModel):
    current_password: str
    password: str
    password_confirm: str


class AdminUserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    bio: Optional[str] = Field(None, max_length=500)
    role: Optional[Literal["viewer", "artist", "admin"]] = None
    is_active: Optional[bool] = None


# Fixed paths are declared before /{user_id}

@router.get("/me")
async def get_me(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Profile of the logged-in user, with owned and favorite artworks"""
    user = user_service.get_profile(db, current_user.id, current_user)
    return success(user=serialize(UserProfile, user))


@router.patch("/update-me")
async def update_me(
    payload: Dict[str, Any] = Body(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Update name, email or bio; password fields are rejected"""
    user = user_service.update_me(db, current_user, payload)
    return success(user=serialize(UserResponse, user))


@router.patch("/update-my-password")
def update_my_password(
    payload: UpdatePasswordRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Change password; returns a fresh token since older ones are revoked"""
    user = user_service.change_password(
        db, current_user, payload.current_password, payload.password, payload.password_confirm)
    return issue_token(user)


@router.delete("/delete-me", status_code=status.HTTP_204_NO_CONTENT)
async def delete_me(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Deactivate the logged-in account (soft delete)"""
    user_service.deactivate(db, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/me/profile-picture")
async def upload_profile_picture(
    file: UploadFile = FastAPIFile(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store=Depends(get_image_store)
):
    content = await file.read()
    user = user_service.upload_profile_picture(db, current_user, content, file.filename, store)
    return success(user=serialize(UserResponse, user))


@router.get("/my-artworks")
async def my_artworks(
    spec: QuerySpec = Depends(get_query_spec),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    artworks = user_service.list_my_artworks(db, current_user, spec)
    return collection("artworks", ArtworkResponse, artworks, spec)


@router.get("/my-favorites")
async def my_favorites(
    spec: QuerySpec = Depends(get_query_spec),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    artworks = user_service.list_my_favorites(db, current_user, spec)
    return collection("artworks", ArtworkResponse, artworks, spec)


@router.get("/")
async def list_users(
    spec: QuerySpec = Depends(get_query_spec),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List active users (admin)"""
    users = user_service.list_users(db, current_user, spec)
    return collection("users", UserResponse, users, spec)


@router.get("/{user_id}")
async def get_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Profile of a user (self or admin)"""
    user = user_service.get_profile(db, user_id, current_user)
    return success(user=serialize(UserProfile, user))


@router.patch("/{user_id}")
async def update_user(
    user_id: int,
    payload: AdminUserUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Update any user (admin)"""
    user = user_service.update_user(db, user_id, payload.model_dump(exclude_unset=True, exclude_none=True), current_user)
    return success(user=serialize(UserResponse, user))


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Permanently delete a user (admin)"""
    user_service.delete_user(db, user_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
