"""Comment services. Threading is one level deep."""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from .. import crud, models
from ..errors import ForbiddenError, NotFoundError, ValidationError
from ..permissions import ACCESS_DENIED, authorize_comment, authorize_issue, can_delete_comment

logger = logging.getLogger("kanban-core.comments")


def list_comments(db: Session, user_id: UUID, issue_id: UUID) -> list[models.Comment]:
    """
    Comments on an issue, oldest first.

    Raises:
        ForbiddenError: If the issue is missing or the user is not a member
            of its project
    """
    issue = crud.get_issue(db, issue_id)
    if issue is None:
        logger.warning(f"User {user_id} listed comments of missing issue {issue_id}")
        raise ForbiddenError(ACCESS_DENIED)
    authorize_issue(db, issue, user_id)
    return crud.get_comments_for_issue(db, issue_id)


def create_comment(
    db: Session,
    user_id: UUID,
    issue_id: UUID,
    content: Optional[str],
    parent_id: Optional[UUID] = None,
) -> models.Comment:
    """
    Post a comment, optionally as a reply to another comment on the same issue.

    Raises:
        ValidationError: If the trimmed content is empty, or the parent is
            missing or belongs to another issue
        ForbiddenError: If the issue is missing or the user is not a member
    """
    content = (content or "").strip()
    if not content:
        raise ValidationError("issue and content required")

    issue = crud.get_issue(db, issue_id)
    if issue is None:
        logger.warning(f"User {user_id} commented on missing issue {issue_id}")
        raise ForbiddenError(ACCESS_DENIED)
    authorize_issue(db, issue, user_id)

    if parent_id is not None:
        parent = crud.get_comment(db, parent_id)
        if parent is None or parent.issue_id != issue.id:
            raise ValidationError("Parent comment must belong to the same issue")

    comment = crud.create_comment(db, issue_id=issue.id, author_id=user_id, content=content, parent_id=parent_id)
    logger.info(f"User {user_id} commented on issue {issue.id} (comment {comment.id})")
    return comment


def delete_comment(db: Session, user_id: UUID, comment_id: UUID) -> int:
    """
    Delete one of the user's own comments together with its direct replies.

    Returns:
        Number of comments deleted

    Raises:
        NotFoundError: If the comment does not exist
        ForbiddenError: If the user is not a member, or not the author
    """
    comment = crud.get_comment(db, comment_id)
    if comment is None:
        raise NotFoundError("Comment not found")
    authorize_comment(db, comment, user_id)
    if not can_delete_comment(comment, user_id):
        logger.warning(f"Denied user {user_id} deleting comment {comment_id}")
        raise ForbiddenError("Can only delete your own comment")

    deleted = crud.delete_comment_with_replies(db, comment_id)
    logger.info(f"User {user_id} deleted comment {comment_id} ({deleted} total)")
    return deleted
