"""Account management: registration, login, profile and password reset."""
import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import crud, models
from ..config import get_settings, Settings
from ..errors import AuthenticationError, NotFoundError, ValidationError
from ..security import (
    create_access_token,
    generate_reset_token,
    hash_password,
    verify_password,
)

logger = logging.getLogger("kanban-core.users")

RESET_REQUESTED_MESSAGE = "If an account with that email exists, a password reset link has been sent."
MIN_SEARCH_LENGTH = 2


def register(db: Session, name: str, email: str, password: str) -> tuple[models.User, str]:
    """
    Create an account and issue an access token for it.

    Returns:
        Tuple of (user, access_token)

    Raises:
        ValidationError: If the email is already registered
    """
    if crud.get_user_by_email(db, email):
        raise ValidationError("Email already registered")

    try:
        user = crud.create_user(db, name=name, email=email, password_hash=hash_password(password))
    except IntegrityError:
        # Concurrent registration of the same email
        db.rollback()
        raise ValidationError("Email already registered")
    logger.info(f"Registered user {user.id} ({user.email})")
    return user, create_access_token(user.id)


def authenticate(db: Session, email: str, password: str) -> tuple[models.User, str]:
    """
    Check credentials and issue an access token.

    Raises:
        AuthenticationError: If the email is unknown or the password is wrong
    """
    user = crud.get_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        logger.warning(f"Failed login for {email}")
        raise AuthenticationError("Invalid email or password")
    return user, create_access_token(user.id)


def get_user(db: Session, user_id: UUID) -> models.User:
    user = crud.get_user_by_id(db, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def update_profile(db: Session, user: models.User, name: str) -> models.User:
    name = name.strip()
    if not name:
        raise ValidationError("Name is required")
    return crud.update_user(db, user, name=name)


def change_password(db: Session, user: models.User, current_password: str, new_password: str) -> None:
    """
    Raises:
        ValidationError: If the current password does not match
    """
    if not verify_password(current_password, user.password_hash):
        raise ValidationError("Current password is incorrect")
    crud.update_user(db, user, password_hash=hash_password(new_password))
    logger.info(f"User {user.id} changed their password")


def request_password_reset(
    db: Session,
    email: str,
    settings: Optional[Settings] = None,
) -> Optional[tuple[str, str]]:
    """
    Store a reset token for the account with ``email``, if any.

    Outside production the link is logged rather than emailed. Callers
    must answer the same way whether or not the account exists.

    Returns:
        Tuple of (token, reset_url), or None if no account matches
    """
    settings = settings or get_settings()
    user = crud.get_user_by_email(db, email)
    if user is None:
        logger.info(f"Password reset requested for unknown email {email}")
        return None

    token, expires_at = generate_reset_token(settings)
    crud.update_user(db, user, reset_token=token, reset_token_expires_at=expires_at)
    reset_url = f"{settings.frontend_base_url.rstrip('/')}/reset-password?token={token}"
    if settings.is_production:
        logger.info(f"Password reset issued for user {user.id}")
    else:
        logger.info(f"Password reset link for {user.email}: {reset_url}")
    return token, reset_url


def reset_password(db: Session, token: str, password: str) -> models.User:
    """
    Set a new password using an unexpired reset token, then clear the token.

    Raises:
        ValidationError: If the token is unknown or expired
    """
    user = crud.get_user_by_reset_token(db, token, datetime.utcnow())
    if user is None:
        raise ValidationError("Invalid or expired reset token")
    user = crud.update_user(
        db,
        user,
        password_hash=hash_password(password),
        reset_token=None,
        reset_token_expires_at=None,
    )
    logger.info(f"Password reset completed for user {user.id}")
    return user


def list_users(db: Session) -> list[models.User]:
    return crud.list_users(db)


def search_users(db: Session, query: Optional[str]) -> list[models.User]:
    """Case-insensitive search over name and email; shorter queries match nothing."""
    query = (query or "").strip()
    if len(query) < MIN_SEARCH_LENGTH:
        return []
    return crud.search_users(db, query)
