"""Projects API endpoints."""
import logging
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ... import models, schemas
from ...database import get_db
from ...services import projects as project_service
from ..dependencies import get_current_user

logger = logging.getLogger("kanban-core.projects")

router = APIRouter(tags=["projects"])


@router.get("/stats", response_model=schemas.DashboardStats)
def get_dashboard_stats(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Dashboard counters across every project the caller can access.
    """
    return project_service.get_dashboard_stats(db, current_user.id)


@router.get("/activity", response_model=list[schemas.IssueResponse])
def get_activity(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    The ten most recently updated issues across the caller's projects.
    """
    return project_service.get_activity(db, current_user.id)


@router.get("/", response_model=list[schemas.ProjectResponse])
def list_projects(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    List projects the caller created or is a member of, most recently updated first.
    """
    return project_service.list_projects(db, current_user.id)


@router.post("/", response_model=schemas.ProjectResponse, status_code=201)
def create_project(
    project: schemas.ProjectCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Create a new project owned by the caller.

    - **name**: Project name
    - **description**: Optional description
    - **status**: planning, active, on-hold, completed or cancelled (default: planning)
    - **priority**: low, medium, high or urgent (default: medium)
    - **start_date** / **end_date**: Optional dates
    - **lead_id**: Optional project lead
    - **members**: Additional member user IDs; the caller is always a member
    """
    return project_service.create_project(db, current_user.id, **project.model_dump())


@router.get("/{project_id}", response_model=schemas.ProjectResponse)
def get_project(
    project_id: UUID,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Get a specific project by ID. Members only.
    """
    return project_service.get_project(db, current_user.id, project_id)


@router.patch("/{project_id}", response_model=schemas.ProjectResponse)
def update_project(
    project_id: UUID,
    project_update: schemas.ProjectUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Update a project. Any member may edit fields; only the owner may replace
    the member set.

    - **name**, **description**, **status**, **priority**, **start_date**,
      **end_date**, **lead_id**: New values (optional)
    - **members**: Full replacement member list (owner only)
    """
    return project_service.update_project(
        db, current_user.id, project_id, **project_update.model_dump(exclude_unset=True)
    )


@router.post("/{project_id}/invite", response_model=schemas.ProjectResponse)
def invite_member(
    project_id: UUID,
    invite: schemas.ProjectInvite,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Invite an existing user to the project. Owner only.

    - **user_id**: User UUID, or
    - **email**: Email address (takes precedence when both are sent)
    """
    return project_service.invite_member(db, current_user.id, project_id, invite.target())


@router.delete("/{project_id}/members/{user_id}", response_model=schemas.ProjectResponse)
def remove_member(
    project_id: UUID,
    user_id: UUID,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Remove a member from the project. Owner only; the owner cannot be removed.
    """
    return project_service.remove_member(db, current_user.id, project_id, user_id)


@router.delete("/{project_id}", response_model=schemas.MessageResponse)
def delete_project(
    project_id: UUID,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Delete a project with all of its issues and comments. Owner only.
    """
    project_service.delete_project(db, current_user.id, project_id)
    return schemas.MessageResponse(message="Project deleted")
