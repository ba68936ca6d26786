"""CRUD operations for users, projects, issues and comments.

Functions that take part in a larger unit of work (order shifts, member
replacement) only flush; the caller owns the commit.
"""
import logging
from datetime import datetime
from typing import Any, Optional, Sequence
from uuid import UUID

from sqlalchemy import or_, and_, func
from sqlalchemy.orm import Session

from . import models

logger = logging.getLogger("kanban-core.crud")


# ============================================================================
# User CRUD Operations
# ============================================================================

def create_user(db: Session, name: str, email: str, password_hash: str) -> models.User:
    """
    Create a new user.

    Args:
        db: Database session
        name: Display name
        email: Email address (stored lower-cased)
        password_hash: Already-hashed password

    Returns:
        Created user instance
    """
    db_user = models.User(name=name, email=email.strip().lower(), password_hash=password_hash)
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    logger.debug(f"Created user {db_user.id} ({db_user.email})")
    return db_user


def get_user_by_id(db: Session, user_id: UUID) -> Optional[models.User]:
    """
    Get a user by ID.

    Args:
        db: Database session
        user_id: User UUID

    Returns:
        User if found, None otherwise
    """
    return db.query(models.User).filter(models.User.id == user_id).first()


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    """
    Get a user by email address.

    Args:
        db: Database session
        email: Email address (case-insensitive)

    Returns:
        User if found, None otherwise
    """
    return db.query(models.User).filter(func.lower(models.User.email) == email.strip().lower()).first()


def get_user_by_reset_token(db: Session, token: str, now: datetime) -> Optional[models.User]:
    """Get the user holding an unexpired reset token."""
    return (
        db.query(models.User)
        .filter(
            and_(
                models.User.reset_token == token,
                models.User.reset_token_expires_at > now,
            )
        )
        .first()
    )


def update_user(db: Session, user: models.User, **fields: Any) -> models.User:
    """Set the given attributes on a user and commit."""
    for key, value in fields.items():
        setattr(user, key, value)
    db.commit()
    db.refresh(user)
    logger.debug(f"Updated user {user.id}: {sorted(fields)}")
    return user


def list_users(db: Session) -> list[models.User]:
    """All users ordered by name."""
    return db.query(models.User).order_by(models.User.name).all()


def search_users(db: Session, query: str, limit: int = 10) -> list[models.User]:
    """
    Search users by name or email (case-insensitive substring).

    Args:
        db: Database session
        query: Search text
        limit: Maximum number of results

    Returns:
        Matching users
    """
    pattern = f"%{query}%"
    return (
        db.query(models.User)
        .filter(or_(models.User.email.ilike(pattern), models.User.name.ilike(pattern)))
        .order_by(models.User.name)
        .limit(limit)
        .all()
    )


# ============================================================================
# Project CRUD Operations
# ============================================================================

def create_project(
    db: Session,
    created_by: UUID,
    name: str,
    description: str = "",
    status: models.ProjectStatus = models.ProjectStatus.PLANNING,
    priority: models.Priority = models.Priority.MEDIUM,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    lead_id: Optional[UUID] = None,
    member_ids: Sequence[UUID] = (),
) -> models.Project:
    """
    Create a new project. The creator is always added to the member set.

    Args:
        db: Database session
        created_by: Owner user UUID
        name: Project name
        description: Optional description
        status: Project status
        priority: Project priority
        start_date: Optional start date
        end_date: Optional end date
        lead_id: Optional project lead
        member_ids: Additional member user UUIDs

    Returns:
        Created project instance
    """
    db_project = models.Project(
        name=name,
        description=description,
        status=status,
        priority=priority,
        start_date=start_date,
        end_date=end_date,
        lead_id=lead_id,
        created_by=created_by,
    )
    db.add(db_project)
    db.flush()
    _replace_members(db, db_project, [created_by, *member_ids])
    db.commit()
    db.refresh(db_project)
    logger.debug(f"Created project {db_project.id} ({db_project.name})")
    return db_project


def get_project(db: Session, project_id: UUID) -> Optional[models.Project]:
    """
    Get a project by ID.

    Args:
        db: Database session
        project_id: Project UUID

    Returns:
        Project instance or None if not found
    """
    return db.query(models.Project).filter(models.Project.id == project_id).first()


def lock_project(db: Session, project_id: UUID) -> Optional[models.Project]:
    """
    Take a row lock on a project (SELECT ... FOR UPDATE) for the rest of the
    current transaction. Used to serialize column writes across processes;
    a no-op on SQLite.
    """
    return (
        db.query(models.Project)
        .filter(models.Project.id == project_id)
        .with_for_update()
        .first()
    )


def _accessible_projects_query(db: Session, user_id: UUID):
    member_project_ids = (
        db.query(models.ProjectMember.project_id)
        .filter(models.ProjectMember.user_id == user_id)
    )
    return db.query(models.Project).filter(
        or_(
            models.Project.created_by == user_id,
            models.Project.id.in_(member_project_ids),
        )
    )


def get_projects_for_user(db: Session, user_id: UUID) -> list[models.Project]:
    """
    Get every project the user created or is a member of.

    Returns:
        Projects ordered by most recently updated first
    """
    return (
        _accessible_projects_query(db, user_id)
        .order_by(models.Project.updated_at.desc())
        .all()
    )


def get_accessible_project_ids(db: Session, user_id: UUID) -> list[UUID]:
    """IDs of every project the user created or is a member of."""
    return [p.id for p in _accessible_projects_query(db, user_id).with_entities(models.Project.id)]


def update_project(db: Session, project: models.Project, **fields: Any) -> models.Project:
    """
    Update project attributes.

    Args:
        db: Database session
        project: Loaded project
        **fields: Attribute values to set; ``members`` replaces the member set

    Returns:
        Updated project
    """
    member_ids = fields.pop("members", None)
    for key, value in fields.items():
        setattr(project, key, value)
    if member_ids is not None:
        _replace_members(db, project, [project.created_by, *member_ids])
    # Bump updated_at even when only the member set changed
    project.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(project)
    logger.debug(f"Updated project {project.id}")
    return project


def delete_project(db: Session, project: models.Project) -> None:
    """Delete a project; issues, comments and member rows cascade."""
    project_id = project.id
    db.delete(project)
    db.commit()
    logger.debug(f"Deleted project {project_id}")


def _replace_members(db: Session, project: models.Project, user_ids: Sequence[UUID]) -> None:
    wanted = list(dict.fromkeys(user_ids))
    for member in list(project.members):
        if member.user_id not in wanted:
            project.members.remove(member)
    existing = project.member_ids
    for user_id in wanted:
        if user_id not in existing:
            project.members.append(models.ProjectMember(user_id=user_id))
    db.flush()


def add_project_member(db: Session, project: models.Project, user_id: UUID) -> models.ProjectMember:
    """
    Add a user to a project.

    Args:
        db: Database session
        project: Loaded project
        user_id: User UUID

    Returns:
        Created project member instance

    Raises:
        ValueError: If member already exists
    """
    if user_id in project.member_ids:
        raise ValueError("User already in project")

    db_member = models.ProjectMember(user_id=user_id)
    project.members.append(db_member)
    project.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(db_member)
    logger.debug(f"Added user {user_id} to project {project.id}")
    return db_member


def remove_project_member(db: Session, project: models.Project, user_id: UUID) -> bool:
    """
    Remove a user from a project.

    Returns:
        True if removed, False if the user was not a member
    """
    for member in project.members:
        if member.user_id == user_id:
            project.members.remove(member)
            project.updated_at = datetime.utcnow()
            db.commit()
            logger.debug(f"Removed user {user_id} from project {project.id}")
            return True
    return False


# ============================================================================
# Issue CRUD Operations
# ============================================================================

def create_issue(db: Session, commit: bool = True, **fields: Any) -> models.Issue:
    """
    Insert an issue. ``order`` must already be computed by the caller.

    Args:
        db: Database session
        commit: Commit immediately; pass False to only flush inside a
            caller-owned transaction
        **fields: Issue column values

    Returns:
        Created issue instance
    """
    db_issue = models.Issue(**fields)
    db.add(db_issue)
    if commit:
        db.commit()
        db.refresh(db_issue)
    else:
        db.flush()
    logger.debug(f"Created issue {db_issue.id} at {db_issue.status.value}:{db_issue.order}")
    return db_issue


def get_issue(db: Session, issue_id: UUID, for_update: bool = False) -> Optional[models.Issue]:
    """
    Get an issue by ID.

    Args:
        db: Database session
        issue_id: Issue UUID
        for_update: Lock the row (SELECT ... FOR UPDATE) and refresh the
            loaded instance; a no-op lock on SQLite

    Returns:
        Issue instance or None if not found
    """
    query = db.query(models.Issue).filter(models.Issue.id == issue_id)
    if for_update:
        query = query.with_for_update().populate_existing()
    return query.first()


def get_max_order(db: Session, project_id: UUID, status: models.IssueStatus) -> Optional[int]:
    """
    Highest ``order`` in a (project, status) column.

    Returns:
        The maximum order, or None for an empty column
    """
    return (
        db.query(func.max(models.Issue.order))
        .filter(
            and_(
                models.Issue.project_id == project_id,
                models.Issue.status == status,
            )
        )
        .scalar()
    )


def shift_issue_orders(
    db: Session,
    project_id: UUID,
    status: models.IssueStatus,
    delta: int,
    above: Optional[int] = None,
    at_least: Optional[int] = None,
    below: Optional[int] = None,
    at_most: Optional[int] = None,
    exclude_id: Optional[UUID] = None,
) -> int:
    """
    Atomically add ``delta`` to ``order`` for every issue in a column whose
    order falls inside the given bounds (a single UPDATE statement).

    Does not commit; the caller owns the transaction.

    Args:
        db: Database session
        project_id: Project UUID
        status: Column status
        delta: Amount to add (usually +1 or -1)
        above: order > above
        at_least: order >= at_least
        below: order < below
        at_most: order <= at_most
        exclude_id: Issue to leave untouched (the one being moved)

    Returns:
        Number of issues shifted
    """
    conditions = [
        models.Issue.project_id == project_id,
        models.Issue.status == status,
    ]
    if above is not None:
        conditions.append(models.Issue.order > above)
    if at_least is not None:
        conditions.append(models.Issue.order >= at_least)
    if below is not None:
        conditions.append(models.Issue.order < below)
    if at_most is not None:
        conditions.append(models.Issue.order <= at_most)
    if exclude_id is not None:
        conditions.append(models.Issue.id != exclude_id)

    count = (
        db.query(models.Issue)
        .filter(and_(*conditions))
        .update({models.Issue.order: models.Issue.order + delta}, synchronize_session=False)
    )
    logger.debug(f"Shifted {count} issues in {project_id}/{status.value} by {delta:+d}")
    return count


def get_issues(
    db: Session,
    project_ids: Optional[Sequence[UUID]] = None,
    status: Optional[models.IssueStatus] = None,
    priority: Optional[models.Priority] = None,
    issue_type: Optional[models.IssueType] = None,
    assignee_id: Optional[UUID] = None,
    unassigned: bool = False,
    created_by: Optional[UUID] = None,
    search: Optional[str] = None,
    order_by: Sequence = (),
    skip: int = 0,
    limit: Optional[int] = None,
) -> tuple[list[models.Issue], int]:
    """
    Get issues with filtering and pagination.

    Args:
        db: Database session
        project_ids: Restrict to these projects
        status: Filter by status
        priority: Filter by priority
        issue_type: Filter by type
        assignee_id: Filter by assignee
        unassigned: Only issues with no assignee (overrides assignee_id)
        created_by: Filter by creator
        search: Case-insensitive substring over title and description
        order_by: SQLAlchemy ordering clauses
        skip: Number of items to skip
        limit: Maximum number of items to return (None for all)

    Returns:
        Tuple of (issues, total_count)
    """
    query = db.query(models.Issue)

    if project_ids is not None:
        query = query.filter(models.Issue.project_id.in_(list(project_ids)))

    if status:
        query = query.filter(models.Issue.status == status)

    if priority:
        query = query.filter(models.Issue.priority == priority)

    if issue_type:
        query = query.filter(models.Issue.type == issue_type)

    if unassigned:
        query = query.filter(models.Issue.assignee_id.is_(None))
    elif assignee_id:
        query = query.filter(models.Issue.assignee_id == assignee_id)

    if created_by:
        query = query.filter(models.Issue.created_by == created_by)

    if search and search.strip():
        search_pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                models.Issue.title.ilike(search_pattern),
                models.Issue.description.ilike(search_pattern),
            )
        )

    # Get total count before pagination
    total = query.count()

    query = query.order_by(*order_by)
    if skip:
        query = query.offset(skip)
    if limit is not None:
        query = query.limit(limit)

    return query.all(), total


def update_issue(db: Session, issue: models.Issue, commit: bool = True, **fields: Any) -> models.Issue:
    """
    Set issue attributes. ``status`` and ``order`` belong to the ordering
    engine and are not accepted here.

    Args:
        db: Database session
        issue: Loaded issue
        commit: Commit immediately; pass False to only flush
        **fields: Attribute values to set

    Returns:
        Updated issue
    """
    for key in ("status", "order", "project_id"):
        if key in fields:
            raise ValueError(f"Cannot update '{key}' directly")
    for key, value in fields.items():
        setattr(issue, key, value)
    if commit:
        db.commit()
        db.refresh(issue)
    else:
        db.flush()
    logger.debug(f"Updated issue {issue.id}: {sorted(fields)}")
    return issue


def delete_issue(db: Session, issue: models.Issue, commit: bool = True) -> None:
    """Hard-delete an issue; its comments cascade. The column order gap is left as is."""
    issue_id = issue.id
    db.delete(issue)
    if commit:
        db.commit()
    else:
        db.flush()
    logger.debug(f"Deleted issue {issue_id}")


# ============================================================================
# Comment CRUD Operations
# ============================================================================

def create_comment(
    db: Session,
    issue_id: UUID,
    author_id: UUID,
    content: str,
    parent_id: Optional[UUID] = None,
) -> models.Comment:
    """
    Create a comment on an issue.

    Returns:
        Created comment instance
    """
    db_comment = models.Comment(
        issue_id=issue_id,
        author_id=author_id,
        content=content,
        parent_id=parent_id,
    )
    db.add(db_comment)
    db.commit()
    db.refresh(db_comment)
    logger.debug(f"Created comment {db_comment.id} on issue {issue_id}")
    return db_comment


def get_comment(db: Session, comment_id: UUID) -> Optional[models.Comment]:
    """Get a comment by ID."""
    return db.query(models.Comment).filter(models.Comment.id == comment_id).first()


def get_comments_for_issue(db: Session, issue_id: UUID) -> list[models.Comment]:
    """All comments on an issue, oldest first."""
    return (
        db.query(models.Comment)
        .filter(models.Comment.issue_id == issue_id)
        .order_by(models.Comment.created_at.asc())
        .all()
    )


def delete_comment_with_replies(db: Session, comment_id: UUID) -> int:
    """
    Delete a comment and its direct replies in one transaction.

    Replies to those replies are not deleted; their parent link is cleared
    by the foreign key.

    Returns:
        Number of comments deleted
    """
    # Replies go first so the parent's ON DELETE SET NULL cannot detach them
    replies = (
        db.query(models.Comment)
        .filter(models.Comment.parent_id == comment_id)
        .delete(synchronize_session=False)
    )
    deleted = (
        db.query(models.Comment)
        .filter(models.Comment.id == comment_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    logger.debug(f"Deleted comment {comment_id} and {replies} replies")
    return deleted + replies
