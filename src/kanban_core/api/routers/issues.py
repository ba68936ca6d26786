"""Issues API endpoints, including the Kanban reorder and issue comments."""
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ... import models, schemas
from ...database import get_db
from ...services import comments as comment_service
from ...services import issues as issue_service
from ..dependencies import get_current_user

logger = logging.getLogger("kanban-core.issues")

router = APIRouter(tags=["issues"])


@router.get("/", response_model=list[schemas.IssueResponse])
def list_issues(
    project: Optional[UUID] = Query(None, description="Restrict to one project (board order)"),
    project_id: Optional[UUID] = Query(None, description="Alias of project"),
    status: Optional[str] = Query(None, description="Filter by status column"),
    priority: Optional[models.Priority] = Query(None, description="Filter by priority"),
    assignee: Optional[str] = Query(None, description="Assignee user ID, or 'unassigned'"),
    type: Optional[models.IssueType] = Query(None, description="Filter by type"),
    search: Optional[str] = Query(None, description="Search in title and description"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    List issues.

    With **project** the result is that project's board, sorted by order.
    Without it, every accessible issue is returned, most recently updated
    first.

    - **status**: open, in-progress or done
    - **priority**: low, medium, high or urgent
    - **assignee**: User ID, or `unassigned`
    - **type**: bug, feature or task
    - **search**: Case-insensitive text in title and description
    """
    return issue_service.list_issues(
        db,
        current_user.id,
        project_id=project or project_id,
        status=status,
        priority=priority,
        assignee=assignee,
        issue_type=type,
        search=search,
    )


@router.get("/assigned", response_model=schemas.IssuePage)
def list_assigned_issues(
    status: Optional[str] = Query(None, description="Filter by status column"),
    priority: Optional[models.Priority] = Query(None, description="Filter by priority"),
    search: Optional[str] = Query(None, description="Search in title and description"),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(issue_service.DEFAULT_PAGE_SIZE, ge=1, description="Items per page (capped at 100)"),
    sort: str = Query(issue_service.DEFAULT_SORT, description="Sort key, '-' prefix for descending"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Issues assigned to the caller across all projects.

    - **sort**: updated_at, created_at, due_date, priority, title or order
    """
    return issue_service.list_assigned_issues(
        db, current_user.id,
        status=status, priority=priority, search=search,
        page=page, limit=limit, sort=sort,
    )


@router.get("/created", response_model=schemas.IssuePage)
def list_created_issues(
    status: Optional[str] = Query(None, description="Filter by status column"),
    priority: Optional[models.Priority] = Query(None, description="Filter by priority"),
    search: Optional[str] = Query(None, description="Search in title and description"),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(issue_service.DEFAULT_PAGE_SIZE, ge=1, description="Items per page (capped at 100)"),
    sort: str = Query(issue_service.DEFAULT_SORT, description="Sort key, '-' prefix for descending"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Issues created by the caller across all projects.

    - **sort**: updated_at, created_at, due_date, priority, title or order
    """
    return issue_service.list_created_issues(
        db, current_user.id,
        status=status, priority=priority, search=search,
        page=page, limit=limit, sort=sort,
    )


@router.post("/", response_model=schemas.IssueResponse, status_code=201)
def create_issue(
    issue: schemas.IssueCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Create an issue at the end of its status column.

    - **project_id**: Owning project (caller must be a member)
    - **title**: Issue title
    - **type**: bug, feature or task (default: bug)
    - **status**: open, in-progress or done (default: open)
    - **priority**: low, medium, high or urgent (default: medium)
    - **assignee_id**: Optional assignee (must be a project member)
    - **due_date**: Optional due date
    """
    return issue_service.create_issue(db, current_user.id, **issue.model_dump())


@router.get("/{issue_id}", response_model=schemas.IssueResponse)
def get_issue(
    issue_id: UUID,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Get a specific issue by ID.
    """
    return issue_service.get_issue(db, current_user.id, issue_id)


@router.put("/{issue_id}", response_model=schemas.IssueResponse)
@router.patch("/{issue_id}", response_model=schemas.IssueResponse)
def update_issue(
    issue_id: UUID,
    issue_update: schemas.IssueUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Update an issue. Only the fields sent are changed.

    - **assignee_id**: New assignee (must be a project member); null or "" unassigns
    - **status**: Moves the issue to the end of the new column
    """
    return issue_service.update_issue(
        db, current_user.id, issue_id, **issue_update.model_dump(exclude_unset=True)
    )


@router.patch("/{issue_id}/reorder", response_model=schemas.IssueResponse)
def reorder_issue(
    issue_id: UUID,
    move: schemas.IssueReorder,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Move an issue on the Kanban board.

    - **status**: Destination column (default: current column)
    - **order**: Destination position (default: end of the column)
    """
    return issue_service.reorder_issue(db, current_user.id, issue_id, status=move.status, order=move.order)


@router.delete("/{issue_id}", response_model=schemas.MessageResponse)
def delete_issue(
    issue_id: UUID,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Delete an issue. Allowed for its creator or the project owner.
    """
    issue_service.delete_issue(db, current_user.id, issue_id)
    return schemas.MessageResponse(message="Issue deleted")


@router.get("/{issue_id}/comments", response_model=list[schemas.CommentResponse])
def list_issue_comments(
    issue_id: UUID,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Comments on an issue, oldest first.
    """
    issue_service.get_issue(db, current_user.id, issue_id)
    return comment_service.list_comments(db, current_user.id, issue_id)


@router.post("/{issue_id}/comments", response_model=schemas.CommentResponse, status_code=201)
def create_issue_comment(
    issue_id: UUID,
    comment: schemas.CommentBody,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Comment on an issue.

    - **content**: Comment text
    - **parent_id**: Optional comment being replied to (same issue)
    """
    issue_service.get_issue(db, current_user.id, issue_id)
    return comment_service.create_comment(
        db, current_user.id, issue_id, comment.content, parent_id=comment.parent_id
    )
