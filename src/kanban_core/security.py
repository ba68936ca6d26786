"""Password hashing and bearer token helpers."""
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from jose import jwt, JWTError
from passlib.context import CryptContext

from .config import get_settings, Settings
from .errors import AuthenticationError

logger = logging.getLogger("kanban-core.security")

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def create_access_token(user_id: UUID, settings: Optional[Settings] = None) -> str:
    """
    Issue a signed access token for a user.

    Args:
        user_id: User UUID (stored in the ``sub`` claim)
        settings: Optional settings override

    Returns:
        Encoded JWT
    """
    settings = settings or get_settings()
    expires = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)
    return jwt.encode(
        {"sub": str(user_id), "exp": expires},
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )


def decode_access_token(token: str, settings: Optional[Settings] = None) -> UUID:
    """
    Verify an access token and return the user id it was issued for.

    Raises:
        AuthenticationError: If the token is expired, tampered with or malformed
    """
    settings = settings or get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        return UUID(payload["sub"])
    except (JWTError, KeyError, ValueError) as e:
        logger.debug(f"Rejected access token: {e}")
        raise AuthenticationError("Not authorized, token failed")


def generate_reset_token(settings: Optional[Settings] = None) -> tuple[str, datetime]:
    """Return a random reset token and its (naive UTC) expiry."""
    settings = settings or get_settings()
    token = secrets.token_hex(32)
    expires_at = datetime.utcnow() + timedelta(minutes=settings.reset_token_expire_minutes)
    return token, expires_at
