"""Best-effort bulk operations over lists of note ids.

A batch holds the store lock for its whole duration, so no other operation
interleaves with it. Every item runs in its own short transaction: a failing
item is counted and reported while its siblings still apply.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from sqlalchemy import delete, update
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.sql import Executable

from juan_note.models.db_models import DBNote
from juan_note.models.schema import to_epoch, utc_now
from juan_note.storage.database import Database
from juan_note.storage.note_repository import touch_timestamp

logger = logging.getLogger(__name__)


@dataclass
class BulkResult:
    """Outcome of a bulk operation."""
    successful_count: int = 0
    failed_count: int = 0
    errors: List[str] = field(default_factory=list)


def _reason(error: SQLAlchemyError) -> str:
    """Driver message without SQLAlchemy's statement dump."""
    if isinstance(error, DBAPIError) and error.orig is not None:
        return str(error.orig)
    return str(error)


class BulkNoteOperations:
    """Bulk delete and field updates for notes."""

    def __init__(self, database: Database) -> None:
        self.database = database

    def _bulk_operation(
        self,
        note_ids: List[int],
        operation_name: str,
        verb: str,
        statement_for: Callable[[int, int], Executable],
    ) -> BulkResult:
        """Template method for bulk note operations.

        Args:
            note_ids: Ids to operate on, in caller order.
            operation_name: Name for logging (e.g. "bulk_delete").
            verb: Used in per-item failure messages ("Failed to <verb> note N").
            statement_for: Callable(index, note_id) -> statement for that item.

        Returns:
            Counts plus one message per failed item, in input order.
        """
        result = BulkResult()
        if not note_ids:
            return result

        with self.database.lock:
            for index, note_id in enumerate(note_ids):
                try:
                    with self.database.connection() as conn:
                        rowcount = conn.execute(statement_for(index, note_id)).rowcount
                except SQLAlchemyError as e:
                    result.failed_count += 1
                    result.errors.append(f"Failed to {verb} note {note_id}: {_reason(e)}")
                    logger.warning(f"{operation_name}: note {note_id} failed: {_reason(e)}")
                    continue

                if rowcount > 0:
                    result.successful_count += 1
                else:
                    result.failed_count += 1
                    result.errors.append(f"Note {note_id} not found")

        logger.info(
            f"{operation_name}: {result.successful_count} succeeded, "
            f"{result.failed_count} failed"
        )
        return result

    def _touch(self):
        return touch_timestamp(to_epoch(utc_now()))

    def delete(self, note_ids: List[int]) -> BulkResult:
        return self._bulk_operation(
            note_ids,
            "bulk_delete",
            "delete",
            lambda _, note_id: delete(DBNote).where(DBNote.id == note_id),
        )

    def set_priority(self, note_ids: List[int], priority: int) -> BulkResult:
        return self._bulk_operation(
            note_ids,
            "bulk_update_priority",
            "update",
            lambda _, note_id: update(DBNote)
            .where(DBNote.id == note_id)
            .values(priority=priority, updated_at=self._touch()),
        )

    def set_done(self, note_ids: List[int], done: bool) -> BulkResult:
        return self._bulk_operation(
            note_ids,
            "bulk_update_done",
            "update",
            lambda _, note_id: update(DBNote)
            .where(DBNote.id == note_id)
            .values(done=done, updated_at=self._touch()),
        )

    def set_state(self, note_ids: List[int], state_id: Optional[int]) -> BulkResult:
        """Move notes to a column; a missing state fails each item on the foreign key."""
        return self._bulk_operation(
            note_ids,
            "bulk_update_state",
            "update",
            lambda _, note_id: update(DBNote)
            .where(DBNote.id == note_id)
            .values(state_id=state_id, updated_at=self._touch()),
        )

    def set_order(self, note_ids: List[int], orders: List[int]) -> BulkResult:
        """Assign ``orders[i]`` to ``note_ids[i]``.

        Ids without a matching entry get order 0; surplus entries are ignored.
        """
        def statement_for(index: int, note_id: int) -> Executable:
            order = orders[index] if index < len(orders) else 0
            return (
                update(DBNote)
                .where(DBNote.id == note_id)
                .values(order=order, updated_at=self._touch())
            )

        return self._bulk_operation(note_ids, "bulk_update_order", "update", statement_for)
