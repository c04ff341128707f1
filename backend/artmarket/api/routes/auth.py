from datetime import timedelta
from typing import Literal
from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session
from pydantic import BaseModel, EmailStr, Field
from artmarket.core.database import get_db
from artmarket.core.security import create_access_token
from artmarket.core.config import settings
from artmarket.models.user import User
from artmarket.api.dependencies import get_current_user, get_notifier
from artmarket.api.schemas import UserResponse, serialize
from artmarket.services.user_service import user_service

router = APIRouter(prefix="/auth", tags=["auth"])


class SignupRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str
    password_confirm: str
    role: Literal["viewer", "artist"] = "viewer"


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    password: str
    password_confirm: str


def issue_token(user: User) -> dict:
    """Token envelope returned by every route that (re)authenticates a user"""
    access_token = create_access_token(
        data={"sub": str(user.id)},
        expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    return {
        "status": "success",
        "access_token": access_token,
        "token_type": "bearer",
        "data": {"user": serialize(UserResponse, user)},
    }


@router.post("/signup", status_code=status.HTTP_201_CREATED)
def signup(
    payload: SignupRequest,
    db: Session = Depends(get_db),
    notifier=Depends(get_notifier)
):
    """Register a new viewer or artist and log them in"""
    user = user_service.register(db, payload.model_dump(), notifier)
    return issue_token(user)


@router.post("/login")
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db)
):
    """Login and get access token"""
    # OAuth2PasswordRequestForm uses 'username' field, but we store emails
    user = user_service.authenticate(db, form_data.username, form_data.password)
    return issue_token(user)


@router.get("/me")
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Get current user information"""
    return {"status": "success", "data": {"user": serialize(UserResponse, current_user)}}


@router.post("/forgot-password")
def forgot_password(
    payload: ForgotPasswordRequest,
    db: Session = Depends(get_db),
    notifier=Depends(get_notifier)
):
    """Email a single-use password reset link"""
    user_service.forgot_password(db, payload.email, notifier)
    return {"status": "success", "message": "Token sent to email!"}


@router.patch("/reset-password/{token}")
def reset_password(
    token: str,
    payload: ResetPasswordRequest,
    db: Session = Depends(get_db)
):
    """Set a new password with a reset token and log the user in"""
    user = user_service.reset_password(db, token, payload.password, payload.password_confirm)
    return issue_token(user)
