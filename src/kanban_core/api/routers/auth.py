"""Authentication API endpoints."""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ... import models, schemas
from ...config import get_settings
from ...database import get_db
from ...services import users as user_service
from ..dependencies import get_current_user

logger = logging.getLogger("kanban-core.auth")

router = APIRouter(tags=["auth"])


@router.post("/register", response_model=schemas.TokenResponse, status_code=201)
def register(
    body: schemas.RegisterRequest,
    db: Session = Depends(get_db),
):
    """
    Create an account and return an access token.

    - **name**: Display name
    - **email**: Email address (case-insensitive, must be unused)
    - **password**: At least 6 characters
    """
    user, token = user_service.register(db, body.name, body.email, body.password)
    return schemas.TokenResponse(user=schemas.UserResponse.model_validate(user), token=token)


@router.post("/login", response_model=schemas.TokenResponse)
def login(
    body: schemas.LoginRequest,
    db: Session = Depends(get_db),
):
    """
    Exchange email and password for an access token.
    """
    user, token = user_service.authenticate(db, body.email, body.password)
    return schemas.TokenResponse(user=schemas.UserResponse.model_validate(user), token=token)


@router.get("/me", response_model=schemas.UserResponse)
def me(current_user: models.User = Depends(get_current_user)):
    """Return the authenticated user."""
    return current_user


@router.patch("/profile", response_model=schemas.ProfileResponse)
def update_profile(
    body: schemas.ProfileUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Update the caller's profile.

    - **name**: New display name
    """
    user = user_service.update_profile(db, current_user, body.name)
    return schemas.ProfileResponse(user=schemas.UserResponse.model_validate(user))


@router.patch("/change-password", response_model=schemas.MessageResponse)
def change_password(
    body: schemas.PasswordChange,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Change the caller's password.

    - **current_password**: Existing password
    - **new_password**: At least 6 characters
    """
    user_service.change_password(db, current_user, body.current_password, body.new_password)
    return schemas.MessageResponse(message="Password changed successfully")


@router.post("/forgot-password", response_model=schemas.ForgotPasswordResponse)
def forgot_password(
    body: schemas.ForgotPasswordRequest,
    db: Session = Depends(get_db),
):
    """
    Start a password reset.

    The answer is the same whether or not the email is registered. In
    development the token and link are included for local testing.
    """
    settings = get_settings()
    result = user_service.request_password_reset(db, body.email, settings)

    response = schemas.ForgotPasswordResponse(message=user_service.RESET_REQUESTED_MESSAGE)
    if result is not None and settings.environment == "development":
        response.reset_token, response.reset_url = result
    return response


@router.post("/reset-password", response_model=schemas.MessageResponse)
def reset_password(
    body: schemas.ResetPasswordRequest,
    db: Session = Depends(get_db),
):
    """
    Complete a password reset with the emailed token.

    - **token**: Reset token
    - **password**: New password (at least 6 characters)
    """
    user_service.reset_password(db, body.token, body.password)
    return schemas.MessageResponse(message="Password has been reset successfully")
