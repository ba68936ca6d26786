"""Project membership authorization.

Every access decision in the service layer goes through this module:

- Membership: the project creator, or a user listed in the member set.
- Ownership: the project creator only.
- Issues resolve their project directly; comments resolve issue -> project.
  A broken link anywhere in that chain denies access rather than erroring.

The ``is_*``/``can_*`` predicates are pure functions over loaded records; the
``authorize_*``/``ensure_*`` helpers raise typed errors.
"""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from . import models
from .errors import ForbiddenError, ValidationError

logger = logging.getLogger("kanban-core.permissions")

ACCESS_DENIED = "Access denied"


def is_owner(project: models.Project, user_id: Optional[UUID]) -> bool:
    """True iff ``user_id`` created the project."""
    return user_id is not None and project.created_by == user_id


def is_member(project: models.Project, user_id: Optional[UUID]) -> bool:
    """True iff ``user_id`` created the project or is in its member set."""
    if user_id is None:
        return False
    return is_owner(project, user_id) or user_id in project.member_ids


def can_delete_issue(issue: models.Issue, project: models.Project, user_id: UUID) -> bool:
    """Issue creator or project owner; membership alone is not enough."""
    return issue.created_by == user_id or is_owner(project, user_id)


def can_delete_comment(comment: models.Comment, user_id: UUID) -> bool:
    """Only the author may delete a comment."""
    return comment.author_id == user_id


def authorize_project(
    db: Session,
    project_id: Optional[UUID],
    user_id: UUID,
) -> models.Project:
    """
    Load a project and require membership.

    A missing project is reported as access denied, so callers referencing a
    project from another entity never leak whether it exists.

    Raises:
        ForbiddenError: If the project is missing or the user is not a member
    """
    project = None
    if project_id is not None:
        project = db.query(models.Project).filter(models.Project.id == project_id).first()
    if project is None or not is_member(project, user_id):
        logger.warning(f"Denied user {user_id} access to project {project_id}")
        raise ForbiddenError(ACCESS_DENIED)
    return project


def authorize_issue(db: Session, issue: models.Issue, user_id: UUID) -> models.Project:
    """
    Require membership in the project owning ``issue``.

    Returns:
        The owning project
    """
    return authorize_project(db, issue.project_id, user_id)


def authorize_comment(db: Session, comment: models.Comment, user_id: UUID) -> models.Project:
    """
    Require membership in the project owning the comment's issue.

    Returns:
        The owning project

    Raises:
        ForbiddenError: If the issue or project no longer exists, or the user is not a member
    """
    issue = db.query(models.Issue).filter(models.Issue.id == comment.issue_id).first()
    if issue is None:
        logger.warning(f"Comment {comment.id} references missing issue {comment.issue_id}")
        raise ForbiddenError(ACCESS_DENIED)
    return authorize_issue(db, issue, user_id)


def require_owner(project: models.Project, user_id: UUID, message: str) -> None:
    """
    Raises:
        ForbiddenError: With ``message`` if the user does not own the project
    """
    if not is_owner(project, user_id):
        logger.warning(f"Denied non-owner {user_id} on project {project.id}: {message}")
        raise ForbiddenError(message)


def ensure_assignable(project: models.Project, assignee_id: Optional[UUID]) -> None:
    """
    Check an assignee at assignment time. ``None`` (unassigned) always passes.

    Raises:
        ValidationError: If the assignee is not a member of the project
    """
    if assignee_id is not None and not is_member(project, assignee_id):
        raise ValidationError("Assignee must be a project member")
