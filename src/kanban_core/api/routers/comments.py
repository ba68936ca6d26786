"""Comments API endpoints."""
import logging
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ... import models, schemas
from ...database import get_db
from ...services import comments as comment_service
from ..dependencies import get_current_user

logger = logging.getLogger("kanban-core.comments")

router = APIRouter(tags=["comments"])


@router.get("/issue/{issue_id}", response_model=list[schemas.CommentResponse])
def list_comments(
    issue_id: UUID,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Comments on an issue, oldest first.
    """
    return comment_service.list_comments(db, current_user.id, issue_id)


@router.post("/", response_model=schemas.CommentResponse, status_code=201)
def create_comment(
    comment: schemas.CommentCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Comment on an issue.

    - **issue_id**: Issue being discussed (caller must be a project member)
    - **content**: Comment text (trimmed, required)
    - **parent_id**: Optional comment being replied to
    """
    return comment_service.create_comment(
        db, current_user.id, comment.issue_id, comment.content, parent_id=comment.parent_id
    )


@router.delete("/{comment_id}", response_model=schemas.MessageResponse)
def delete_comment(
    comment_id: UUID,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Delete one of your own comments together with its direct replies.
    """
    comment_service.delete_comment(db, current_user.id, comment_id)
    return schemas.MessageResponse(message="Comment deleted")
