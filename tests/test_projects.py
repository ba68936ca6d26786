"""Tests for project services: membership management, stats and activity."""
import uuid
from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError as SchemaValidationError

from kanban_core import models, ordering
from kanban_core.errors import ForbiddenError, NotFoundError, ValidationError
from kanban_core.schemas import InviteByEmail, InviteById, ProjectInvite
from kanban_core.services import comments as comment_service
from kanban_core.services import issues as issue_service
from kanban_core.services import projects as project_service


class TestCreateProject:
    """Creating projects."""

    def test_creator_is_member(self, db, alice):
        """The owner is always in the member set."""
        project = project_service.create_project(db, alice.id, name="Solo")
        assert project.created_by == alice.id
        assert project.member_ids == {alice.id}
        assert project.status == models.ProjectStatus.PLANNING

    def test_extra_members_deduplicated(self, db, alice, bob):
        """Supplied members are added once, the owner included only once."""
        project = project_service.create_project(db, alice.id, name="Team", members=[bob.id, alice.id, bob.id])
        assert project.member_ids == {alice.id, bob.id}
        assert len(project.members) == 2

    def test_unknown_member_rejected(self, db, alice):
        with pytest.raises(ValidationError):
            project_service.create_project(db, alice.id, name="Team", members=[uuid.uuid4()])
        assert db.query(models.Project).count() == 0


class TestListAndGetProject:
    """Listing and reading projects."""

    def test_list_only_accessible(self, db, project, alice, bob, carol):
        """Projects appear for their owner and members only."""
        project_service.create_project(db, carol.id, name="Carol's")

        assert [p.name for p in project_service.list_projects(db, bob.id)] == ["Board"]
        assert [p.name for p in project_service.list_projects(db, carol.id)] == ["Carol's"]

    def test_list_most_recent_first(self, db, alice):
        first = project_service.create_project(db, alice.id, name="First")
        project_service.create_project(db, alice.id, name="Second")
        project_service.update_project(db, alice.id, first.id, description="touched")

        assert [p.name for p in project_service.list_projects(db, alice.id)][0] == "First"

    def test_get_requires_membership(self, db, project, bob, carol):
        assert project_service.get_project(db, bob.id, project.id).id == project.id
        with pytest.raises(ForbiddenError):
            project_service.get_project(db, carol.id, project.id)

    def test_get_missing(self, db, alice):
        with pytest.raises(NotFoundError):
            project_service.get_project(db, alice.id, uuid.uuid4())


class TestUpdateProject:
    """Any member edits fields; only the owner edits the member set."""

    def test_member_can_edit_fields(self, db, project, bob):
        updated = project_service.update_project(
            db, bob.id, project.id, name="Renamed", status=models.ProjectStatus.ACTIVE
        )
        assert updated.name == "Renamed"
        assert updated.status == models.ProjectStatus.ACTIVE

    def test_member_cannot_change_members(self, db, project, bob, carol):
        with pytest.raises(ForbiddenError) as exc_info:
            project_service.update_project(db, bob.id, project.id, members=[bob.id, carol.id])
        assert exc_info.value.message == "Only owner can manage members"

    def test_owner_replaces_members_and_stays(self, db, project, alice, bob, carol):
        """Replacing the member set never drops the owner."""
        updated = project_service.update_project(db, alice.id, project.id, members=[carol.id])
        assert updated.member_ids == {alice.id, carol.id}

    def test_non_member_denied(self, db, project, carol):
        with pytest.raises(ForbiddenError):
            project_service.update_project(db, carol.id, project.id, name="Mine")

    def test_null_name_ignored(self, db, project, alice):
        updated = project_service.update_project(db, alice.id, project.id, name=None, description="d")
        assert updated.name == "Board"
        assert updated.description == "d"


class TestInvite:
    """Inviting users by id or email."""

    def test_invite_by_id(self, db, project, alice, carol):
        updated = project_service.invite_member(db, alice.id, project.id, InviteById(user_id=carol.id))
        assert carol.id in updated.member_ids

    def test_invite_by_email_case_insensitive(self, db, project, alice, carol):
        updated = project_service.invite_member(
            db, alice.id, project.id, InviteByEmail(email="CAROL@Example.com")
        )
        assert carol.id in updated.member_ids

    def test_duplicate_rejected(self, db, project, alice, bob):
        with pytest.raises(ValidationError) as exc_info:
            project_service.invite_member(db, alice.id, project.id, InviteById(user_id=bob.id))
        assert exc_info.value.message == "User already in project"

    def test_unknown_email(self, db, project, alice):
        with pytest.raises(NotFoundError) as exc_info:
            project_service.invite_member(db, alice.id, project.id, InviteByEmail(email="nobody@example.com"))
        assert exc_info.value.message == "User with this email not found"

    def test_unknown_user_id(self, db, project, alice):
        with pytest.raises(NotFoundError):
            project_service.invite_member(db, alice.id, project.id, InviteById(user_id=uuid.uuid4()))

    def test_only_owner_invites(self, db, project, bob, carol):
        with pytest.raises(ForbiddenError) as exc_info:
            project_service.invite_member(db, bob.id, project.id, InviteById(user_id=carol.id))
        assert exc_info.value.message == "Only owner can invite"

    def test_missing_project(self, db, alice, carol):
        with pytest.raises(NotFoundError):
            project_service.invite_member(db, alice.id, uuid.uuid4(), InviteById(user_id=carol.id))

    def test_invite_body_variants(self):
        """Email wins over user_id; one of them is required."""
        user_id = uuid.uuid4()
        assert ProjectInvite(user_id=user_id).target() == InviteById(user_id=user_id)
        assert ProjectInvite(user_id=user_id, email=" Bob@Example.com ").target() == InviteByEmail(
            email="bob@example.com"
        )
        with pytest.raises(SchemaValidationError):
            ProjectInvite()


class TestRemoveMember:
    """Removing members."""

    def test_owner_removes_member(self, db, project, alice, bob):
        updated = project_service.remove_member(db, alice.id, project.id, bob.id)
        assert updated.member_ids == {alice.id}

    def test_owner_cannot_be_removed(self, db, project, alice):
        with pytest.raises(ValidationError):
            project_service.remove_member(db, alice.id, project.id, alice.id)

    def test_non_member_target(self, db, project, alice, carol):
        with pytest.raises(NotFoundError):
            project_service.remove_member(db, alice.id, project.id, carol.id)

    def test_member_cannot_remove(self, db, project, bob):
        with pytest.raises(ForbiddenError):
            project_service.remove_member(db, bob.id, project.id, bob.id)


class TestDeleteProject:
    """Deleting projects."""

    def test_only_owner(self, db, project, bob):
        with pytest.raises(ForbiddenError) as exc_info:
            project_service.delete_project(db, bob.id, project.id)
        assert exc_info.value.message == "Only owner can delete project"

    def test_cascades_to_issues_comments_and_members(self, db, project, make_issue, alice, bob):
        issue = make_issue("A")
        comment_service.create_comment(db, bob.id, issue.id, "hello")

        project_service.delete_project(db, alice.id, project.id)

        assert db.query(models.Project).count() == 0
        assert db.query(models.Issue).count() == 0
        assert db.query(models.Comment).count() == 0
        assert db.query(models.ProjectMember).count() == 0
        assert db.query(models.User).count() == 2

    def test_board_lock_dropped(self, db, project, make_issue, alice):
        """Deleting a project forgets its board lock."""
        make_issue("A")
        project_id = project.id
        assert project_id in ordering.project_locks

        project_service.delete_project(db, alice.id, project_id)

        assert project_id not in ordering.project_locks

    def test_missing_project(self, db, alice):
        with pytest.raises(NotFoundError):
            project_service.delete_project(db, alice.id, uuid.uuid4())


class TestDashboard:
    """Stats and recent activity."""

    def test_stats(self, db, project, make_issue, alice, bob, carol):
        now = datetime(2030, 6, 1)
        make_issue("Late", assignee_id=alice.id, due_date=now - timedelta(days=1))
        make_issue("Late but done", status=models.IssueStatus.DONE, due_date=now - timedelta(days=1))
        make_issue("Working", status="in-progress", assignee_id=bob.id)

        finished = project_service.create_project(db, alice.id, name="Finished")
        issue_service.create_issue(db, alice.id, finished.id, title="Shipped", status="done")
        project_service.create_project(db, alice.id, name="Empty")
        project_service.create_project(db, carol.id, name="Not mine")

        stats = project_service.get_dashboard_stats(db, alice.id, now=now)
        assert stats == {
            "total_projects": 3,
            "completed_projects": 1,
            "my_tasks": 1,
            "overdue": 1,
            "in_progress": 1,
            "total_issues": 4,
        }

    def test_activity_recent_first_and_capped(self, db, make_issue, bob):
        now = datetime.utcnow()
        for i in range(12):
            issue = make_issue(f"I{i}")
            db.query(models.Issue).filter(models.Issue.id == issue.id).update(
                {models.Issue.updated_at: now - timedelta(minutes=i)}, synchronize_session=False
            )
        db.commit()

        activity = project_service.get_activity(db, bob.id)
        assert [i.title for i in activity] == [f"I{i}" for i in range(10)]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
