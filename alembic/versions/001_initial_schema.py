"""Initial schema: users, projects, members, issues and comments.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PRIORITIES = ('low', 'medium', 'high', 'urgent')
ENUM_NAMES = ('project_status', 'project_priority', 'issue_type', 'issue_status', 'issue_priority')


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('reset_token', sa.String(128)),
        sa.Column('reset_token_expires_at', sa.DateTime),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_reset_token', 'users', ['reset_token'])

    op.create_table(
        'projects',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text, nullable=False, server_default=''),
        sa.Column('status', sa.Enum('planning', 'active', 'on-hold', 'completed', 'cancelled', name='project_status'), nullable=False, server_default='planning'),
        sa.Column('priority', sa.Enum(*PRIORITIES, name='project_priority'), nullable=False, server_default='medium'),
        sa.Column('start_date', sa.DateTime),
        sa.Column('end_date', sa.DateTime),
        sa.Column('lead_id', sa.Uuid, sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('created_by', sa.Uuid, sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_projects_status', 'projects', ['status'])
    op.create_index('ix_projects_created_by', 'projects', ['created_by'])
    op.create_index('ix_projects_created_at', 'projects', ['created_at'])

    op.create_table(
        'project_members',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('project_id', sa.Uuid, sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Uuid, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('joined_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('project_id', 'user_id', name='unique_project_user'),
    )
    op.create_index('ix_project_members_project_id', 'project_members', ['project_id'])
    op.create_index('ix_project_members_user_id', 'project_members', ['user_id'])

    op.create_table(
        'issues',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('project_id', sa.Uuid, sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text, nullable=False, server_default=''),
        sa.Column('type', sa.Enum('bug', 'feature', 'task', name='issue_type'), nullable=False, server_default='bug'),
        sa.Column('status', sa.Enum('open', 'in-progress', 'done', name='issue_status'), nullable=False, server_default='open'),
        sa.Column('priority', sa.Enum(*PRIORITIES, name='issue_priority'), nullable=False, server_default='medium'),
        sa.Column('order', sa.Integer, nullable=False, server_default='0'),
        sa.Column('due_date', sa.DateTime),
        sa.Column('created_by', sa.Uuid, sa.ForeignKey('users.id'), nullable=False),
        sa.Column('assignee_id', sa.Uuid, sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('"order" >= 0', name='non_negative_issue_order'),
    )
    op.create_index('ix_issues_project_id', 'issues', ['project_id'])
    op.create_index('ix_issues_status', 'issues', ['status'])
    op.create_index('ix_issues_priority', 'issues', ['priority'])
    op.create_index('ix_issues_due_date', 'issues', ['due_date'])
    op.create_index('ix_issues_created_by', 'issues', ['created_by'])
    op.create_index('ix_issues_assignee_id', 'issues', ['assignee_id'])
    op.create_index('ix_issues_created_at', 'issues', ['created_at'])
    op.create_index('ix_issues_updated_at', 'issues', ['updated_at'])
    # Column lookups and shifts for the Kanban board
    op.create_index('ix_issues_project_status_order', 'issues', ['project_id', 'status', 'order'])

    op.create_table(
        'comments',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('issue_id', sa.Uuid, sa.ForeignKey('issues.id', ondelete='CASCADE'), nullable=False),
        sa.Column('author_id', sa.Uuid, sa.ForeignKey('users.id'), nullable=False),
        sa.Column('parent_id', sa.Uuid, sa.ForeignKey('comments.id', ondelete='SET NULL')),
        sa.Column('content', sa.Text, nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_comments_issue_id', 'comments', ['issue_id'])
    op.create_index('ix_comments_author_id', 'comments', ['author_id'])
    op.create_index('ix_comments_parent_id', 'comments', ['parent_id'])
    op.create_index('ix_comments_created_at', 'comments', ['created_at'])


def downgrade() -> None:
    # Drop tables
    op.drop_table('comments')
    op.drop_table('issues')
    op.drop_table('project_members')
    op.drop_table('projects')
    op.drop_table('users')

    # Drop enum types (PostgreSQL only)
    bind = op.get_bind()
    for name in ENUM_NAMES:
        sa.Enum(name=name).drop(bind, checkfirst=True)
