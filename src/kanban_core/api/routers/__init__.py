"""API routers for Kanban Core."""

from . import auth, users, projects, issues, comments

__all__ = ["auth", "users", "projects", "issues", "comments"]
