from typing import Literal
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel
from artmarket.core.database import get_db
from artmarket.models.user import User
from artmarket.api.dependencies import get_current_user
from artmarket.api.schemas import UserResponse, serialize, success
from artmarket.services.admin_service import admin_service
from artmarket.services.user_service import user_service

router = APIRouter(prefix="/admin", tags=["admin"])


class ChangeRoleRequest(BaseModel):
    user_id: int
    new_role: Literal["viewer", "artist", "admin"]


@router.get("/dashboard/stats")
async def dashboard_stats(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    stats = admin_service.dashboard_stats(db, current_user)
    stats["revenue"] = float(stats["revenue"])
    return success(stats=stats)


@router.patch("/users/change-role")
async def change_role(
    payload: ChangeRoleRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    user = user_service.change_role(db, payload.user_id, payload.new_role, current_user)
    return success(user=serialize(UserResponse, user))


@router.get("/users/{user_id}")
async def get_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Any user, including deactivated accounts"""
    user = user_service.get_user(db, user_id, current_user)
    return success(user=serialize(UserResponse, user))
