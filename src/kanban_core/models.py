"""SQLAlchemy database models."""
from datetime import datetime
from uuid import uuid4
import enum

from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    DateTime,
    ForeignKey,
    Enum,
    CheckConstraint,
    UniqueConstraint,
    Index,
    Uuid,
)
from sqlalchemy.orm import relationship, declarative_base

# Base class for all models
Base = declarative_base()


class ProjectStatus(str, enum.Enum):
    """Project status enum."""

    PLANNING = "planning"
    ACTIVE = "active"
    ON_HOLD = "on-hold"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Priority(str, enum.Enum):
    """Priority enum shared by projects and issues."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class IssueType(str, enum.Enum):
    """Issue type enum."""

    BUG = "bug"
    FEATURE = "feature"
    TASK = "task"


class IssueStatus(str, enum.Enum):
    """Issue status enum. Each status is one Kanban column.

    Older clients send the underscore spelling ``in_progress``; it is
    accepted on input and normalized to ``in-progress``.
    """

    OPEN = "open"
    IN_PROGRESS = "in-progress"
    DONE = "done"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str) and value.replace("_", "-") == cls.IN_PROGRESS.value:
            return cls.IN_PROGRESS
        return None


def _enum_values(enum_cls):
    # Persist enum values (lowercase) instead of names (UPPERCASE)
    return [e.value for e in enum_cls]


class User(Base):
    """
    User model for password authentication.

    Email is stored lower-cased so lookups are case-insensitive.
    Users are never hard-deleted.
    """

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)

    # Password reset flow
    reset_token = Column(String(128), nullable=True, index=True)
    reset_token_expires_at = Column(DateTime, nullable=True)

    # Audit fields
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<User {self.email}>"


class Project(Base):
    """
    Project model - the tenancy boundary for issues.

    The creator owns the project: only the creator may change membership or
    delete the project. The creator is always treated as a member, even if
    no ProjectMember row exists for them.
    """

    __tablename__ = "projects"

    id = Column(Uuid, primary_key=True, default=uuid4)

    # Core fields
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    status = Column(
        Enum(ProjectStatus, values_callable=_enum_values, name="project_status"),
        nullable=False,
        default=ProjectStatus.PLANNING,
        index=True
    )
    priority = Column(
        Enum(Priority, values_callable=_enum_values, name="project_priority"),
        nullable=False,
        default=Priority.MEDIUM,
    )
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    lead_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Audit fields
    created_by = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    creator = relationship("User", foreign_keys=[created_by])
    lead = relationship("User", foreign_keys=[lead_id])
    members = relationship(
        "ProjectMember",
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ProjectMember.joined_at",
    )
    issues = relationship("Issue", back_populates="project", cascade="all, delete-orphan", passive_deletes=True)

    @property
    def member_ids(self) -> set:
        return {m.user_id for m in self.members}

    def __repr__(self) -> str:
        return f"<Project {self.name}>"


class ProjectMember(Base):
    """
    Junction table linking users to projects.

    Membership is flat: any member may read and write issues. Ownership
    (the project creator) is not a membership role.
    """

    __tablename__ = "project_members"

    id = Column(Uuid, primary_key=True, default=uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    joined_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    project = relationship("Project", back_populates="members")
    user = relationship("User")

    # Constraints
    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="unique_project_user"),
    )

    def __repr__(self) -> str:
        return f"<ProjectMember {self.user_id} in {self.project_id}>"


class Issue(Base):
    """
    Issue model - a card on the project's Kanban board.

    ``order`` is the card's position within its (project, status) column.
    Reordering keeps each column dense (0..N-1); creation appends to the
    end; deletion leaves a gap that the next reorder or append tolerates.
    """

    __tablename__ = "issues"

    id = Column(Uuid, primary_key=True, default=uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)

    # Core fields
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    type = Column(
        Enum(IssueType, values_callable=_enum_values, name="issue_type"),
        nullable=False,
        default=IssueType.BUG,
    )
    status = Column(
        Enum(IssueStatus, values_callable=_enum_values, name="issue_status"),
        nullable=False,
        default=IssueStatus.OPEN,
        index=True
    )
    priority = Column(
        Enum(Priority, values_callable=_enum_values, name="issue_priority"),
        nullable=False,
        default=Priority.MEDIUM,
        index=True
    )
    order = Column(Integer, nullable=False, default=0)
    due_date = Column(DateTime, nullable=True, index=True)

    # People
    created_by = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    assignee_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    # Audit fields
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow, index=True)

    # Relationships
    project = relationship("Project", back_populates="issues")
    creator = relationship("User", foreign_keys=[created_by])
    assignee = relationship("User", foreign_keys=[assignee_id])
    comments = relationship("Comment", back_populates="issue", cascade="all, delete-orphan", passive_deletes=True)

    # Constraints
    __table_args__ = (
        CheckConstraint('"order" >= 0', name="non_negative_issue_order"),
        Index("ix_issues_project_status_order", "project_id", "status", "order"),
    )

    def __repr__(self) -> str:
        return f"<Issue {self.title[:30]} [{self.status}:{self.order}]>"


class Comment(Base):
    """
    Comment on an issue.

    Threading is a single level: a comment may point at a parent comment.
    Deleting a comment removes its direct replies only; deeper replies are
    kept and lose their parent link.
    """

    __tablename__ = "comments"

    id = Column(Uuid, primary_key=True, default=uuid4)
    issue_id = Column(Uuid, ForeignKey("issues.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    parent_id = Column(Uuid, ForeignKey("comments.id", ondelete="SET NULL"), nullable=True, index=True)
    content = Column(Text, nullable=False)

    # Audit fields
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    issue = relationship("Issue", back_populates="comments")
    author = relationship("User")

    def __repr__(self) -> str:
        return f"<Comment {self.id} on {self.issue_id}>"
