"""Kanban ordering engine.

Each (project, status) pair is a column and ``Issue.order`` is the card's
position in it. Moves keep every column dense (0..N-1):

- Same column, moving down (new > old): cards in (old, new] shift up by one
  slot (order - 1).
- Same column, moving up (new < old): cards in [new, old) shift down by one
  slot (order + 1).
- Across columns: cards after the old slot in the source column close the
  gap (order - 1); cards at or after the new slot in the destination column
  make room (order + 1).
- The moved card is written last, so sibling shifts never see it at its old
  position (they also exclude it by id).

Omitting the target order appends to the end of the destination column. A
target past the end is clamped to the end so the column stays dense.

All column writes for a project run under ``column_transaction``: an
in-process lock per project plus a row lock on the project, inside one
database transaction. Lock timeouts and database lock failures surface as
``ConflictError`` with the transaction rolled back.

Positions are plain integers, so a move costs O(column size) row updates.
"""
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, Optional
from uuid import UUID

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from . import crud, models
from .errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger("kanban-core.ordering")


class ProjectLockRegistry:
    """One re-entrant lock per project id, created on first use."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[UUID, threading.RLock] = {}

    def get(self, project_id: UUID) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(project_id)
            if lock is None:
                lock = self._locks[project_id] = threading.RLock()
            return lock

    def discard(self, project_id: UUID) -> None:
        """Forget a deleted project's lock."""
        with self._guard:
            self._locks.pop(project_id, None)

    def __contains__(self, project_id: UUID) -> bool:
        with self._guard:
            return project_id in self._locks


project_locks = ProjectLockRegistry()


@contextmanager
def column_transaction(db: Session, project_id: UUID, timeout: float) -> Iterator[None]:
    """
    Serialize column writes for one project and commit them as a unit.

    Args:
        db: Database session
        project_id: Project whose columns are being written
        timeout: Seconds to wait for the in-process project lock

    Raises:
        ConflictError: If the lock cannot be taken in time or the database
            reports a lock/serialization failure
    """
    lock = project_locks.get(project_id)
    if not lock.acquire(timeout=timeout):
        logger.warning(f"Timed out after {timeout}s waiting for column lock on project {project_id}")
        raise ConflictError("Another move on this board is in progress, please retry")
    try:
        crud.lock_project(db, project_id)
        yield
        db.commit()
    except OperationalError as e:
        db.rollback()
        logger.warning(f"Column write on project {project_id} rolled back: {e}")
        raise ConflictError("The board changed while moving the issue, please retry") from e
    except Exception:
        db.rollback()
        raise
    finally:
        lock.release()


@dataclass(frozen=True)
class Move:
    """A planned move from (old_status, old_order) to (new_status, new_order)."""

    old_status: models.IssueStatus
    old_order: int
    new_status: models.IssueStatus
    new_order: int

    @property
    def same_column(self) -> bool:
        return self.old_status == self.new_status


def append_position(db: Session, project_id: UUID, status: models.IssueStatus) -> int:
    """
    Order for a card appended to a column: max + 1, or 0 if the column is empty.
    """
    max_order = crud.get_max_order(db, project_id, status)
    return 0 if max_order is None else max_order + 1


def parse_status(value: Any) -> models.IssueStatus:
    """
    Coerce a status value (enum or string) to ``IssueStatus``.

    Raises:
        ValidationError: If the value is not a known status
    """
    try:
        return models.IssueStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in models.IssueStatus)
        raise ValidationError(f"Invalid status '{value}'. Allowed: {allowed}")


def validate_order(value: Any) -> Optional[int]:
    """
    Raises:
        ValidationError: Unless the value is None or a non-negative integer
    """
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError("order must be a non-negative integer")
    return value


def plan_move(
    db: Session,
    issue: models.Issue,
    new_status: Optional[Any] = None,
    new_order: Optional[int] = None,
) -> Move:
    """
    Resolve the target position of a move without writing anything.

    Args:
        db: Database session
        issue: Issue being moved (freshly loaded)
        new_status: Destination column (defaults to the current one)
        new_order: Destination slot (defaults to the end of the column)

    Returns:
        The planned move

    Raises:
        ValidationError: For an unknown status or a negative/non-integer order
    """
    new_order = validate_order(new_order)
    old_status = issue.status
    old_order = issue.order or 0
    target_status = old_status if new_status is None else parse_status(new_status)

    if target_status == old_status:
        # The issue is in this column, so the last slot is the current max
        last = crud.get_max_order(db, issue.project_id, old_status)
        last = old_order if last is None else max(last, old_order)
        target_order = last if new_order is None else min(new_order, last)
    else:
        end = append_position(db, issue.project_id, target_status)
        target_order = end if new_order is None else min(new_order, end)

    return Move(old_status, old_order, target_status, target_order)


def apply_move(db: Session, issue: models.Issue, move: Move) -> models.Issue:
    """
    Shift siblings and write the moved issue. Flushes but does not commit.

    Returns:
        The moved issue
    """
    project_id = issue.project_id

    if move.same_column:
        if move.new_order > move.old_order:
            crud.shift_issue_orders(
                db, project_id, move.old_status, -1,
                above=move.old_order, at_most=move.new_order, exclude_id=issue.id,
            )
        elif move.new_order < move.old_order:
            crud.shift_issue_orders(
                db, project_id, move.old_status, +1,
                at_least=move.new_order, below=move.old_order, exclude_id=issue.id,
            )
    else:
        # Close the gap in the source column
        crud.shift_issue_orders(
            db, project_id, move.old_status, -1,
            above=move.old_order, exclude_id=issue.id,
        )
        # Open a slot in the destination column
        crud.shift_issue_orders(
            db, project_id, move.new_status, +1,
            at_least=move.new_order, exclude_id=issue.id,
        )

    # Written last, after the sibling shifts
    issue.status = move.new_status
    issue.order = move.new_order
    db.flush()
    return issue


def move_issue(
    db: Session,
    issue_id: UUID,
    new_status: Optional[Any] = None,
    new_order: Optional[int] = None,
    lock_timeout: float = 5.0,
) -> models.Issue:
    """
    Move an issue within or across Kanban columns atomically.

    Args:
        db: Database session
        issue_id: Issue UUID
        new_status: Destination column (defaults to the current one)
        new_order: Destination slot (defaults to the end of the column)
        lock_timeout: Seconds to wait for concurrent moves on the project

    Returns:
        The moved issue

    Raises:
        NotFoundError: If the issue does not exist (or was deleted meanwhile)
        ValidationError: For an invalid status or order
        ConflictError: If the move could not be serialized
    """
    issue = crud.get_issue(db, issue_id)
    if issue is None:
        raise NotFoundError("Issue not found")

    with column_transaction(db, issue.project_id, lock_timeout):
        # Re-read under the lock; another move may have shifted this card
        issue = crud.get_issue(db, issue_id, for_update=True)
        if issue is None:
            raise NotFoundError("Issue not found")
        move = plan_move(db, issue, new_status, new_order)
        apply_move(db, issue, move)

    db.refresh(issue)
    logger.info(
        f"Moved issue {issue_id}: {move.old_status.value}:{move.old_order} "
        f"-> {move.new_status.value}:{move.new_order}"
    )
    return issue
