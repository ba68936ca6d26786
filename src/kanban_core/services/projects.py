"""Project services: CRUD, membership management and dashboard statistics."""
import logging
from datetime import datetime
from typing import Any, Iterable, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from .. import crud, models, ordering
from ..errors import NotFoundError, ValidationError
from ..permissions import authorize_project, require_owner
from ..schemas import InviteByEmail, InviteById, InviteTarget

logger = logging.getLogger("kanban-core.projects")

ACTIVITY_LIMIT = 10


def _load_project(db: Session, project_id: UUID) -> models.Project:
    project = crud.get_project(db, project_id)
    if project is None:
        raise NotFoundError("Project not found")
    return project


def _require_users(db: Session, user_ids: Iterable[Optional[UUID]]) -> None:
    for user_id in user_ids:
        if user_id is not None and crud.get_user_by_id(db, user_id) is None:
            raise ValidationError(f"User {user_id} not found")


def create_project(db: Session, user_id: UUID, **fields: Any) -> models.Project:
    """
    Create a project owned by ``user_id``.

    The owner is always added to the member set, ahead of any ``members``
    passed in.

    Raises:
        ValidationError: If a member or lead id does not resolve to a user
    """
    member_ids = list(fields.pop("members", None) or [])
    _require_users(db, [*member_ids, fields.get("lead_id")])

    project = crud.create_project(db, created_by=user_id, member_ids=member_ids, **fields)
    logger.info(f"Created project '{project.name}' (ID: {project.id}) for user {user_id}")
    return project


def list_projects(db: Session, user_id: UUID) -> list[models.Project]:
    """Projects the user created or belongs to, most recently updated first."""
    return crud.get_projects_for_user(db, user_id)


def get_project(db: Session, user_id: UUID, project_id: UUID) -> models.Project:
    """
    Raises:
        NotFoundError: If the project does not exist
        ForbiddenError: If the user is not a member
    """
    _load_project(db, project_id)
    return authorize_project(db, project_id, user_id)


def update_project(db: Session, user_id: UUID, project_id: UUID, **fields: Any) -> models.Project:
    """
    Update project fields. Any member may edit; replacing ``members`` is
    reserved for the owner, and the owner always stays in the set.

    Raises:
        NotFoundError: If the project does not exist
        ForbiddenError: If the user is not a member, or not the owner when
            ``members`` is present
        ValidationError: If a member or lead id does not resolve to a user
    """
    project = get_project(db, user_id, project_id)

    if "members" in fields:
        require_owner(project, user_id, "Only owner can manage members")
        if fields["members"] is None:
            fields.pop("members")
        else:
            _require_users(db, fields["members"])
    if "lead_id" in fields:
        _require_users(db, [fields["lead_id"]])

    # Columns that cannot be null keep their value when sent as null
    for key in ("name", "description", "status", "priority"):
        if key in fields and fields[key] is None:
            fields.pop(key)

    project = crud.update_project(db, project, **fields)
    logger.info(f"Updated project {project.id} fields {sorted(fields)} by user {user_id}")
    return project


def resolve_invite(db: Session, target: InviteTarget) -> models.User:
    """
    Resolve an invite target to an existing user.

    Raises:
        NotFoundError: If no user matches
    """
    if isinstance(target, InviteByEmail):
        user = crud.get_user_by_email(db, target.email)
        if user is None:
            raise NotFoundError("User with this email not found")
        return user
    if isinstance(target, InviteById):
        user = crud.get_user_by_id(db, target.user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user
    raise ValidationError("user_id or email required")


def invite_member(db: Session, user_id: UUID, project_id: UUID, target: InviteTarget) -> models.Project:
    """
    Add a user to a project. Owner only.

    Raises:
        NotFoundError: If the project or the invited user does not exist
        ForbiddenError: If the caller does not own the project
        ValidationError: If the user is already a member
    """
    project = _load_project(db, project_id)
    require_owner(project, user_id, "Only owner can invite")

    invitee = resolve_invite(db, target)
    try:
        crud.add_project_member(db, project, invitee.id)
    except ValueError as e:
        raise ValidationError(str(e))

    db.refresh(project)
    logger.info(f"User {user_id} invited {invitee.id} to project {project.id}")
    return project


def remove_member(db: Session, user_id: UUID, project_id: UUID, member_id: UUID) -> models.Project:
    """
    Remove a member from a project. Owner only; the owner cannot be removed.

    Raises:
        NotFoundError: If the project does not exist or the user is not a member
        ForbiddenError: If the caller does not own the project
        ValidationError: If the target is the owner
    """
    project = _load_project(db, project_id)
    require_owner(project, user_id, "Only owner can manage members")

    if member_id == project.created_by:
        raise ValidationError("Project owner cannot be removed")
    if not crud.remove_project_member(db, project, member_id):
        raise NotFoundError("User is not a project member")

    db.refresh(project)
    logger.info(f"User {user_id} removed {member_id} from project {project.id}")
    return project


def delete_project(db: Session, user_id: UUID, project_id: UUID) -> None:
    """
    Delete a project with its issues, comments and member rows. Owner only.
    """
    project = _load_project(db, project_id)
    require_owner(project, user_id, "Only owner can delete project")
    crud.delete_project(db, project)
    ordering.project_locks.discard(project_id)
    logger.info(f"User {user_id} deleted project {project_id}")


def get_dashboard_stats(db: Session, user_id: UUID, now: Optional[datetime] = None) -> dict:
    """
    Aggregate counters across every project the user can access.

    A project counts as completed when it has at least one issue and all of
    its issues are done.

    Returns:
        Dict matching ``schemas.DashboardStats``
    """
    now = now or datetime.utcnow()
    project_ids = crud.get_accessible_project_ids(db, user_id)
    issues, total = crud.get_issues(db, project_ids=project_ids)

    by_project: dict[UUID, list[models.Issue]] = {}
    for issue in issues:
        by_project.setdefault(issue.project_id, []).append(issue)

    completed = sum(
        1
        for project_issues in by_project.values()
        if project_issues and all(i.status == models.IssueStatus.DONE for i in project_issues)
    )

    return {
        "total_projects": len(project_ids),
        "completed_projects": completed,
        "my_tasks": sum(1 for i in issues if i.assignee_id == user_id),
        "overdue": sum(
            1 for i in issues
            if i.due_date is not None and i.due_date < now and i.status != models.IssueStatus.DONE
        ),
        "in_progress": sum(1 for i in issues if i.status == models.IssueStatus.IN_PROGRESS),
        "total_issues": total,
    }


def get_activity(db: Session, user_id: UUID, limit: int = ACTIVITY_LIMIT) -> list[models.Issue]:
    """Most recently updated issues across the user's projects."""
    project_ids = crud.get_accessible_project_ids(db, user_id)
    issues, _ = crud.get_issues(
        db,
        project_ids=project_ids,
        order_by=[models.Issue.updated_at.desc()],
        limit=limit,
    )
    return issues
