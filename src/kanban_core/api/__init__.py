"""HTTP API for Kanban Core."""
