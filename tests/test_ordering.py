"""Tests for the Kanban ordering engine."""
import random
import threading
import uuid

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from kanban_core import crud, models, ordering
from kanban_core.config import Settings
from kanban_core.database import enable_sqlite_foreign_keys
from kanban_core.errors import ConflictError, NotFoundError, ValidationError
from kanban_core.services import issues as issue_service
from kanban_core.services import projects as project_service

OPEN = models.IssueStatus.OPEN
IN_PROGRESS = models.IssueStatus.IN_PROGRESS
DONE = models.IssueStatus.DONE


def assert_dense(rows):
    assert [order for _, order in rows] == list(range(len(rows)))


class TestAppend:
    """New issues go to the end of their column."""

    def test_first_issue_gets_zero(self, make_issue):
        """An empty column starts at 0."""
        issue = make_issue("A")
        assert issue.order == 0

    def test_append_is_max_plus_one(self, make_issue, column):
        """Each new issue lands after the current maximum."""
        for title in "ABC":
            make_issue(title)
        assert column(OPEN) == [("A", 0), ("B", 1), ("C", 2)]

    def test_columns_are_independent(self, make_issue, column):
        """Appending to one status does not affect another."""
        make_issue("A")
        make_issue("B")
        x = make_issue("X", status=DONE)
        assert x.order == 0
        assert column(OPEN) == [("A", 0), ("B", 1)]

    def test_append_after_gap(self, db, make_issue, column):
        """Deletion leaves a gap; the next append still uses max + 1."""
        make_issue("A")
        b = make_issue("B")
        make_issue("C")
        crud.delete_issue(db, b)

        d = make_issue("D")
        assert d.order == 3
        assert column(OPEN) == [("A", 0), ("C", 2), ("D", 3)]

    def test_append_position(self, db, project, make_issue):
        """append_position reports 0 for empty columns."""
        assert ordering.append_position(db, project.id, IN_PROGRESS) == 0
        make_issue("A", status=IN_PROGRESS)
        assert ordering.append_position(db, project.id, IN_PROGRESS) == 1


class TestSameColumnMove:
    """Moves within one status column."""

    @pytest.fixture
    def abcd(self, make_issue):
        return {title: make_issue(title) for title in "ABCD"}

    def test_move_up(self, db, abcd, column):
        """[A0,B1,C2,D3], D to 1 gives [A0,D1,B2,C3]."""
        ordering.move_issue(db, abcd["D"].id, new_order=1)
        assert column(OPEN) == [("A", 0), ("D", 1), ("B", 2), ("C", 3)]

    def test_move_down(self, db, abcd, column):
        """[A0,B1,C2,D3], A to 2 gives [B0,C1,A2,D3]."""
        ordering.move_issue(db, abcd["A"].id, new_order=2)
        assert column(OPEN) == [("B", 0), ("C", 1), ("A", 2), ("D", 3)]

    def test_move_to_same_position(self, db, abcd, column):
        """Moving to the current slot changes nothing."""
        issue = ordering.move_issue(db, abcd["B"].id, new_order=1)
        assert issue.order == 1
        assert column(OPEN) == [("A", 0), ("B", 1), ("C", 2), ("D", 3)]

    def test_order_past_end_is_clamped(self, db, abcd, column):
        """A target beyond the column lands on the last slot."""
        issue = ordering.move_issue(db, abcd["B"].id, new_order=99)
        assert issue.order == 3
        assert column(OPEN) == [("A", 0), ("C", 1), ("D", 2), ("B", 3)]

    def test_omitted_order_moves_to_end(self, db, abcd, column):
        """Without an order the issue goes to the end and the column stays dense."""
        ordering.move_issue(db, abcd["A"].id)
        assert column(OPEN) == [("B", 0), ("C", 1), ("D", 2), ("A", 3)]

    def test_explicit_same_status(self, db, abcd, column):
        """Passing the current status is a same-column move."""
        ordering.move_issue(db, abcd["C"].id, new_status="open", new_order=0)
        assert column(OPEN) == [("C", 0), ("A", 1), ("B", 2), ("D", 3)]


class TestCrossColumnMove:
    """Moves between status columns."""

    @pytest.fixture
    def board(self, make_issue):
        issues = {title: make_issue(title) for title in "ABC"}
        issues.update({title: make_issue(title, status=IN_PROGRESS) for title in "XY"})
        return issues

    def test_move_into_middle(self, db, board, column):
        """Source [A0,B1,C2], dest [X0,Y1], B to dest 1."""
        issue = ordering.move_issue(db, board["B"].id, new_status=IN_PROGRESS, new_order=1)

        assert issue.status == IN_PROGRESS
        assert issue.order == 1
        assert column(OPEN) == [("A", 0), ("C", 1)]
        assert column(IN_PROGRESS) == [("X", 0), ("B", 1), ("Y", 2)]

    def test_move_to_top(self, db, board, column):
        """Order 0 pushes the whole destination column down."""
        ordering.move_issue(db, board["C"].id, new_status=IN_PROGRESS, new_order=0)
        assert column(OPEN) == [("A", 0), ("B", 1)]
        assert column(IN_PROGRESS) == [("C", 0), ("X", 1), ("Y", 2)]

    def test_omitted_order_appends(self, db, board, column):
        """Without an order the issue is appended to the destination."""
        ordering.move_issue(db, board["A"].id, new_status=IN_PROGRESS)
        assert column(OPEN) == [("B", 0), ("C", 1)]
        assert column(IN_PROGRESS) == [("X", 0), ("Y", 1), ("A", 2)]

    def test_order_past_end_is_clamped(self, db, board, column):
        """A target beyond the destination lands at its end."""
        issue = ordering.move_issue(db, board["A"].id, new_status=IN_PROGRESS, new_order=50)
        assert issue.order == 2
        assert column(IN_PROGRESS) == [("X", 0), ("Y", 1), ("A", 2)]

    def test_move_into_empty_column(self, db, board, column):
        """An empty destination receives order 0."""
        issue = ordering.move_issue(db, board["B"].id, new_status=DONE, new_order=3)
        assert issue.order == 0
        assert column(DONE) == [("B", 0)]
        assert column(OPEN) == [("A", 0), ("C", 1)]

    def test_legacy_status_spelling(self, db, board, column):
        """The underscore spelling of in-progress is accepted."""
        issue = ordering.move_issue(db, board["A"].id, new_status="in_progress", new_order=0)
        assert issue.status == IN_PROGRESS
        assert column(IN_PROGRESS) == [("A", 0), ("X", 1), ("Y", 2)]


class TestDensity:
    """Columns stay dense across arbitrary move sequences."""

    def test_many_moves(self, db, make_issue, column):
        """Every column is 0..N-1 after each move."""
        issues = [make_issue(f"I{i}") for i in range(6)]
        moves = [
            (issues[0], IN_PROGRESS, 0),
            (issues[3], IN_PROGRESS, 0),
            (issues[5], OPEN, 0),
            (issues[1], DONE, None),
            (issues[0], OPEN, 2),
            (issues[2], DONE, 0),
            (issues[4], IN_PROGRESS, 7),
            (issues[3], DONE, 1),
        ]
        for issue, status, order in moves:
            ordering.move_issue(db, issue.id, new_status=status, new_order=order)
            for status_column in (OPEN, IN_PROGRESS, DONE):
                assert_dense(column(status_column))

        total = sum(len(column(s)) for s in (OPEN, IN_PROGRESS, DONE))
        assert total == 6


class TestMoveValidation:
    """Invalid moves are rejected before anything is written."""

    def test_negative_order(self, db, make_issue, column):
        """Negative orders are a validation error."""
        make_issue("A")
        b = make_issue("B")
        with pytest.raises(ValidationError):
            ordering.move_issue(db, b.id, new_order=-1)
        assert column(OPEN) == [("A", 0), ("B", 1)]

    def test_non_integer_order(self, db, make_issue):
        """Booleans and floats are not orders."""
        a = make_issue("A")
        with pytest.raises(ValidationError):
            ordering.move_issue(db, a.id, new_order=True)
        with pytest.raises(ValidationError):
            ordering.move_issue(db, a.id, new_order=1.5)

    def test_unknown_status(self, db, make_issue):
        """Statuses outside the closed set are rejected."""
        a = make_issue("A")
        with pytest.raises(ValidationError) as exc_info:
            ordering.move_issue(db, a.id, new_status="blocked")
        assert "blocked" in exc_info.value.message

    def test_missing_issue(self, db):
        """Moving an unknown issue is not found."""
        with pytest.raises(NotFoundError):
            ordering.move_issue(db, uuid.uuid4(), new_order=0)


class TestMoveAtomicity:
    """Concurrent or failing moves roll back completely."""

    def test_lock_timeout_raises_conflict(self, db, project, make_issue, column):
        """A move waiting too long for the project lock gives up with a conflict."""
        make_issue("A")
        b = make_issue("B")
        lock = ordering.project_locks.get(project.id)
        held = threading.Event()
        release = threading.Event()

        def hold_lock():
            with lock:
                held.set()
                release.wait(5)

        holder = threading.Thread(target=hold_lock)
        holder.start()
        held.wait(5)
        try:
            with pytest.raises(ConflictError):
                ordering.move_issue(db, b.id, new_order=0, lock_timeout=0.05)
        finally:
            release.set()
            holder.join()

        assert column(OPEN) == [("A", 0), ("B", 1)]

    def test_database_lock_failure_rolls_back(self, db, make_issue, column, monkeypatch):
        """A lock error mid-move surfaces as a conflict and leaves the board as it was."""
        make_issue("A")
        make_issue("B")
        c = make_issue("C", status=IN_PROGRESS)
        calls = []
        real_shift = crud.shift_issue_orders

        def failing_shift(*args, **kwargs):
            calls.append(args)
            if len(calls) == 2:
                raise OperationalError("UPDATE issues", {}, Exception("database is locked"))
            return real_shift(*args, **kwargs)

        monkeypatch.setattr(crud, "shift_issue_orders", failing_shift)

        with pytest.raises(ConflictError):
            ordering.move_issue(db, c.id, new_status=OPEN, new_order=0)

        assert column(OPEN) == [("A", 0), ("B", 1)]
        assert column(IN_PROGRESS) == [("C", 0)]

    def test_lock_is_released_after_move(self, db, project, make_issue):
        """The project lock can be taken again once a move finishes."""
        a = make_issue("A")
        ordering.move_issue(db, a.id, new_order=0)

        acquired = []
        lock = ordering.project_locks.get(project.id)

        def try_lock():
            got = lock.acquire(timeout=1)
            acquired.append(got)
            if got:
                lock.release()

        worker = threading.Thread(target=try_lock)
        worker.start()
        worker.join()
        assert acquired == [True]

    def test_one_lock_per_project(self, project):
        """The registry hands out the same lock for the same project."""
        assert ordering.project_locks.get(project.id) is ordering.project_locks.get(project.id)
        assert ordering.project_locks.get(project.id) is not ordering.project_locks.get(uuid.uuid4())



class TestConcurrentMoves:
    """Moves and appends racing on one board from separate sessions."""

    THREADS = 6
    STEPS = 25

    @pytest.fixture
    def file_sessions(self, tmp_path):
        """Session factory on a file-backed database shared by several threads."""
        engine = create_engine(
            f"sqlite:///{tmp_path / 'board.db'}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        enable_sqlite_foreign_keys(engine)
        models.Base.metadata.create_all(bind=engine)
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
        engine.dispose()

    def test_columns_stay_dense(self, file_sessions):
        """Interleaved moves and appends never leave a gap or a duplicate slot."""
        settings = Settings(reorder_lock_timeout=30)
        statuses = list(models.IssueStatus)

        setup = file_sessions()
        owner = crud.create_user(setup, name="Owner", email="owner@example.com", password_hash="x")
        board = project_service.create_project(setup, owner.id, name="Race")
        issue_ids = [
            issue_service.create_issue(
                setup, owner.id, board.id, title=f"Seed {i}", status=statuses[i % 3], settings=settings
            ).id
            for i in range(9)
        ]
        owner_id, project_id = owner.id, board.id
        setup.close()

        errors = []
        created = []
        start = threading.Barrier(self.THREADS)

        def worker(seed):
            rng = random.Random(seed)
            session = file_sessions()
            try:
                start.wait(5)
                for step in range(self.STEPS):
                    if rng.random() < 0.2:
                        issue = issue_service.create_issue(
                            session, owner_id, project_id,
                            title=f"T{seed}-{step}", status=rng.choice(statuses), settings=settings,
                        )
                        created.append(issue.id)
                    else:
                        ordering.move_issue(
                            session,
                            rng.choice(issue_ids),
                            new_status=rng.choice(statuses),
                            new_order=rng.randint(0, 12),
                            lock_timeout=settings.reorder_lock_timeout,
                        )
            except Exception as e:
                errors.append(e)
            finally:
                session.close()

        threads = [threading.Thread(target=worker, args=(seed,)) for seed in range(self.THREADS)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(60)

        assert errors == []
        assert not any(thread.is_alive() for thread in threads)

        check = file_sessions()
        try:
            total = 0
            for status in statuses:
                orders = [
                    order
                    for (order,) in check.query(models.Issue.order)
                    .filter(models.Issue.project_id == project_id, models.Issue.status == status)
                    .order_by(models.Issue.order)
                ]
                assert orders == list(range(len(orders))), status
                total += len(orders)
            assert total == len(issue_ids) + len(created)
        finally:
            check.close()
        ordering.project_locks.discard(project_id)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
