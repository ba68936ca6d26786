"""Users API endpoints (directory lookups for invites and assignment)."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ... import models, schemas
from ...database import get_db
from ...services import users as user_service
from ..dependencies import get_current_user

logger = logging.getLogger("kanban-core.users")

router = APIRouter(tags=["users"])


@router.get("/", response_model=list[schemas.UserSummary])
def list_users(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    List every user, ordered by name.
    """
    return user_service.list_users(db)


@router.get("/search", response_model=list[schemas.UserSummary])
def search_users(
    q: Optional[str] = Query(None, description="Name or email fragment (at least 2 characters)"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Search users by name or email.

    - **q**: Case-insensitive fragment; shorter than 2 characters returns nothing
    """
    return user_service.search_users(db, q)
