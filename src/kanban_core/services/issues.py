"""Issue services: create, update, move, delete and the list views."""
import logging
from typing import Any, Optional, Union
from uuid import UUID

from sqlalchemy import case
from sqlalchemy.orm import Session

from .. import crud, models, ordering
from ..config import get_settings, Settings
from ..errors import ForbiddenError, NotFoundError, ValidationError
from ..permissions import (
    authorize_issue,
    authorize_project,
    can_delete_issue,
    ensure_assignable,
)

logger = logging.getLogger("kanban-core.issues")

UNASSIGNED = "unassigned"
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
DEFAULT_SORT = "-updated_at"

PRIORITY_RANK = {
    models.Priority.LOW: 0,
    models.Priority.MEDIUM: 1,
    models.Priority.HIGH: 2,
    models.Priority.URGENT: 3,
}

SORT_FIELDS = {
    "updated_at": models.Issue.updated_at,
    "created_at": models.Issue.created_at,
    "due_date": models.Issue.due_date,
    "priority": case(PRIORITY_RANK, value=models.Issue.priority),
    "title": models.Issue.title,
    "order": models.Issue.order,
}

# Older clients send camelCase sort keys
SORT_ALIASES = {
    "updatedAt": "updated_at",
    "createdAt": "created_at",
    "dueDate": "due_date",
}

# Columns that cannot be cleared through an update
NON_NULLABLE_FIELDS = ("title", "description", "type", "priority")


def _load_issue(db: Session, issue_id: UUID) -> models.Issue:
    issue = crud.get_issue(db, issue_id)
    if issue is None:
        raise NotFoundError("Issue not found")
    return issue


def parse_sort(sort: Optional[str]) -> list:
    """
    Turn a sort key such as ``-updated_at`` into ORDER BY clauses.

    Raises:
        ValidationError: If the key is unknown
    """
    sort = (sort or DEFAULT_SORT).strip()
    descending = sort.startswith("-")
    key = sort.lstrip("-")
    key = SORT_ALIASES.get(key, key)
    if key not in SORT_FIELDS:
        allowed = ", ".join(SORT_FIELDS)
        raise ValidationError(f"Invalid sort '{sort}'. Allowed: {allowed}")

    column = SORT_FIELDS[key]
    primary = column.desc() if descending else column.asc()
    return [primary, models.Issue.created_at.desc()]


def parse_assignee(assignee: Optional[Union[str, UUID]]) -> tuple[Optional[UUID], bool]:
    """
    Split an assignee filter into (assignee_id, unassigned).

    Raises:
        ValidationError: If the value is neither a UUID nor ``unassigned``
    """
    if assignee is None or assignee == "":
        return None, False
    if isinstance(assignee, UUID):
        return assignee, False
    if assignee == UNASSIGNED:
        return None, True
    try:
        return UUID(assignee), False
    except ValueError:
        raise ValidationError(f"Invalid assignee '{assignee}'")


def create_issue(
    db: Session,
    user_id: UUID,
    project_id: Optional[UUID],
    title: str,
    description: str = "",
    type: models.IssueType = models.IssueType.BUG,
    status: Any = models.IssueStatus.OPEN,
    priority: models.Priority = models.Priority.MEDIUM,
    assignee_id: Optional[UUID] = None,
    due_date=None,
    settings: Optional[Settings] = None,
) -> models.Issue:
    """
    Create an issue at the end of its status column.

    Args:
        db: Database session
        user_id: Creator
        project_id: Owning project (required)
        title: Issue title
        description: Optional description
        type: bug, feature or task
        status: Column to append to
        priority: Issue priority
        assignee_id: Optional assignee; must be a project member
        due_date: Optional due date
        settings: Optional settings override

    Returns:
        Created issue

    Raises:
        ValidationError: If project_id is missing, the status is unknown or
            the assignee is not a member
        ForbiddenError: If the project is missing or the user is not a member
    """
    settings = settings or get_settings()
    if project_id is None:
        raise ValidationError("project required")

    project = authorize_project(db, project_id, user_id)
    ensure_assignable(project, assignee_id)
    status = ordering.parse_status(status)

    with ordering.column_transaction(db, project.id, settings.reorder_lock_timeout):
        issue = crud.create_issue(
            db,
            commit=False,
            project_id=project.id,
            title=title,
            description=description or "",
            type=type,
            status=status,
            priority=priority,
            assignee_id=assignee_id,
            due_date=due_date,
            created_by=user_id,
            order=ordering.append_position(db, project.id, status),
        )

    db.refresh(issue)
    logger.info(f"Created issue '{issue.title}' (ID: {issue.id}) in project {project.id} at {status.value}:{issue.order}")
    return issue


def get_issue(db: Session, user_id: UUID, issue_id: UUID) -> models.Issue:
    """
    Raises:
        NotFoundError: If the issue does not exist
        ForbiddenError: If the user is not a member of its project
    """
    issue = _load_issue(db, issue_id)
    authorize_issue(db, issue, user_id)
    return issue


def update_issue(
    db: Session,
    user_id: UUID,
    issue_id: UUID,
    settings: Optional[Settings] = None,
    **fields: Any,
) -> models.Issue:
    """
    Apply a partial update to an issue.

    Only the keys present in ``fields`` are touched. ``assignee_id=None``
    unassigns. A status change moves the issue to the end of the
    destination column.

    Raises:
        NotFoundError: If the issue does not exist
        ForbiddenError: If the user is not a member of its project
        ValidationError: If the new assignee is not a project member or the
            status is unknown; the issue is left unchanged
    """
    settings = settings or get_settings()
    issue = _load_issue(db, issue_id)
    project = authorize_issue(db, issue, user_id)

    for key in ("project_id", "order"):
        if key in fields:
            raise ValidationError(f"'{key}' cannot be changed through an update")
    if "assignee_id" in fields:
        ensure_assignable(project, fields["assignee_id"])
    for key in NON_NULLABLE_FIELDS:
        if key in fields and fields[key] is None:
            fields.pop(key)

    new_status = fields.pop("status", None)
    if new_status is not None:
        new_status = ordering.parse_status(new_status)

    if new_status is not None and new_status != issue.status:
        with ordering.column_transaction(db, issue.project_id, settings.reorder_lock_timeout):
            issue = crud.get_issue(db, issue_id, for_update=True)
            if issue is None:
                raise NotFoundError("Issue not found")
            crud.update_issue(db, issue, commit=False, **fields)
            move = ordering.plan_move(db, issue, new_status)
            ordering.apply_move(db, issue, move)
        db.refresh(issue)
        logger.info(f"Updated issue {issue.id} fields {sorted(fields)} and moved it to {new_status.value}:{issue.order}")
    else:
        issue = crud.update_issue(db, issue, **fields)
        logger.info(f"Updated issue {issue.id} fields {sorted(fields)}")
    return issue


def reorder_issue(
    db: Session,
    user_id: UUID,
    issue_id: UUID,
    status: Any = None,
    order: Optional[int] = None,
    settings: Optional[Settings] = None,
) -> models.Issue:
    """
    Move an issue on the Kanban board (membership required).

    Raises:
        NotFoundError: If the issue does not exist
        ForbiddenError: If the user is not a member of its project
        ValidationError: For an unknown status or a negative order
        ConflictError: If a concurrent move could not be serialized
    """
    settings = settings or get_settings()
    issue = _load_issue(db, issue_id)
    authorize_issue(db, issue, user_id)
    return ordering.move_issue(db, issue_id, status, order, lock_timeout=settings.reorder_lock_timeout)


def delete_issue(
    db: Session,
    user_id: UUID,
    issue_id: UUID,
    settings: Optional[Settings] = None,
) -> None:
    """
    Hard-delete an issue. Allowed for the issue creator or the project owner.

    Raises:
        NotFoundError: If the issue does not exist
        ForbiddenError: If the user is not a member, or neither creator nor owner
        ConflictError: If a concurrent move on the board holds the lock too long
    """
    settings = settings or get_settings()
    issue = _load_issue(db, issue_id)
    project = authorize_issue(db, issue, user_id)
    if not can_delete_issue(issue, project, user_id):
        logger.warning(f"Denied user {user_id} deleting issue {issue_id}")
        raise ForbiddenError("Only the ticket creator or project owner can delete")

    with ordering.column_transaction(db, issue.project_id, settings.reorder_lock_timeout):
        # Re-read under the lock; a concurrent move may have removed it
        issue = crud.get_issue(db, issue_id, for_update=True)
        if issue is None:
            raise NotFoundError("Issue not found")
        crud.delete_issue(db, issue, commit=False)
    logger.info(f"User {user_id} deleted issue {issue_id}")


def list_issues(
    db: Session,
    user_id: UUID,
    project_id: Optional[UUID] = None,
    status: Any = None,
    priority: Optional[models.Priority] = None,
    assignee: Optional[Union[str, UUID]] = None,
    issue_type: Optional[models.IssueType] = None,
    search: Optional[str] = None,
) -> list[models.Issue]:
    """
    List issues in one project (board order) or across every project the
    user can access (most recently updated first).

    ``assignee`` accepts a user id or ``unassigned``.

    Raises:
        ForbiddenError: If ``project_id`` is given and the user is not a member
        ValidationError: For an unknown status or assignee value
    """
    if project_id is not None:
        authorize_project(db, project_id, user_id)
        project_ids = [project_id]
        order_by = [models.Issue.order.asc(), models.Issue.created_at.desc()]
    else:
        project_ids = crud.get_accessible_project_ids(db, user_id)
        order_by = [models.Issue.updated_at.desc()]

    assignee_id, unassigned = parse_assignee(assignee)
    issues, _ = crud.get_issues(
        db,
        project_ids=project_ids,
        status=ordering.parse_status(status) if status else None,
        priority=priority,
        issue_type=issue_type,
        assignee_id=assignee_id,
        unassigned=unassigned,
        search=search,
        order_by=order_by,
    )
    return issues


def _paginate(
    db: Session,
    page: Optional[int],
    limit: Optional[int],
    sort: Optional[str],
    **filters: Any,
) -> dict:
    page = max(1, page or 1)
    if not limit or limit < 1:
        limit = DEFAULT_PAGE_SIZE
    limit = min(MAX_PAGE_SIZE, limit)

    status = filters.pop("status", None)
    issues, total = crud.get_issues(
        db,
        status=ordering.parse_status(status) if status else None,
        order_by=parse_sort(sort),
        skip=(page - 1) * limit,
        limit=limit,
        **filters,
    )
    return {"total": total, "page": page, "limit": limit, "issues": issues}


def list_assigned_issues(
    db: Session,
    user_id: UUID,
    status: Any = None,
    priority: Optional[models.Priority] = None,
    search: Optional[str] = None,
    page: Optional[int] = 1,
    limit: Optional[int] = DEFAULT_PAGE_SIZE,
    sort: Optional[str] = DEFAULT_SORT,
) -> dict:
    """
    Issues assigned to the user across all projects, paginated.

    Returns:
        Dict with total, page, limit and issues
    """
    return _paginate(
        db, page, limit, sort,
        assignee_id=user_id, status=status, priority=priority, search=search,
    )


def list_created_issues(
    db: Session,
    user_id: UUID,
    status: Any = None,
    priority: Optional[models.Priority] = None,
    search: Optional[str] = None,
    page: Optional[int] = 1,
    limit: Optional[int] = DEFAULT_PAGE_SIZE,
    sort: Optional[str] = DEFAULT_SORT,
) -> dict:
    """
    Issues created by the user across all projects, paginated.

    Returns:
        Dict with total, page, limit and issues
    """
    return _paginate(
        db, page, limit, sort,
        created_by=user_id, status=status, priority=priority, search=search,
    )
