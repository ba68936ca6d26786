"""Kanban Core - multi-tenant issue tracking backend."""

__version__ = "1.0.0"
