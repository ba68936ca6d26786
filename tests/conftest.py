"""Shared fixtures: an in-memory SQLite database, users, a project and an API client."""
import os

# Must be set before kanban_core reads its settings
os.environ["KANBAN_DATABASE_URL"] = "sqlite://"
os.environ["KANBAN_ENVIRONMENT"] = "test"
os.environ["KANBAN_AUTO_CREATE_TABLES"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from kanban_core import crud, models
from kanban_core.database import enable_sqlite_foreign_keys, get_db
from kanban_core.security import hash_password
from kanban_core.services import issues as issue_service
from kanban_core.services import projects as project_service

PASSWORD = "secret123"


@pytest.fixture
def engine():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    models.Base.metadata.create_all(bind=engine)
    yield engine
    models.Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_user(db):
    """Factory for users with a known password."""
    def _make(name: str, email: str = None):
        email = email or f"{name.lower()}@example.com"
        return crud.create_user(db, name=name, email=email, password_hash=hash_password(PASSWORD))
    return _make


@pytest.fixture
def alice(make_user):
    return make_user("Alice")


@pytest.fixture
def bob(make_user):
    return make_user("Bob")


@pytest.fixture
def carol(make_user):
    """A user outside every project by default."""
    return make_user("Carol")


@pytest.fixture
def project(db, alice, bob):
    """A project owned by alice with bob as a member."""
    return project_service.create_project(db, alice.id, name="Board", members=[bob.id])


@pytest.fixture
def make_issue(db, project, alice):
    """Factory for issues in ``project``, created by alice unless told otherwise."""
    def _make(title: str, status=models.IssueStatus.OPEN, user=None, **fields):
        user_id = (user or alice).id
        return issue_service.create_issue(db, user_id, project.id, title=title, status=status, **fields)
    return _make


@pytest.fixture
def column(db, project):
    """Return [(title, order), ...] for one of ``project``'s columns, by order."""
    def _column(status):
        issues = (
            db.query(models.Issue)
            .filter(
                models.Issue.project_id == project.id,
                models.Issue.status == models.IssueStatus(status),
            )
            .order_by(models.Issue.order)
            .populate_existing()
            .all()
        )
        return [(issue.title, issue.order) for issue in issues]
    return _column


@pytest.fixture
def client(session_factory):
    """API client whose requests each get their own session on the test database."""
    from kanban_core.api.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
