"""FastAPI dependencies for resolving the authenticated principal."""
import logging
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .. import crud, models
from ..database import get_db
from ..errors import AuthenticationError
from ..security import decode_access_token

logger = logging.getLogger("kanban-core.auth")

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> models.User:
    """
    Resolve the user from an ``Authorization: Bearer <token>`` header.

    Raises:
        AuthenticationError: If the header is missing, the token is invalid,
            or the user no longer exists
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Not authorized, no token")

    user_id = decode_access_token(credentials.credentials)
    user = crud.get_user_by_id(db, user_id)
    if user is None:
        logger.warning(f"Valid token for unknown user {user_id}")
        raise AuthenticationError("Not authorized, user not found")
    return user
