"""Repository for note storage and retrieval."""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError

from juan_note.config import config
from juan_note.exceptions import ErrorCode, StorageError, ValidationError
from juan_note.models.db_models import DBNote, DBState
from juan_note.models.schema import (
    CreateNoteRequest,
    Note,
    UpdateNoteRequest,
    deserialize_labels,
    from_epoch,
    serialize_labels,
    to_epoch,
    utc_now,
)
from juan_note.storage.database import Database
from juan_note.storage.fts_index import FtsIndex

logger = logging.getLogger(__name__)

STRATEGY_INFER = "infer"
STRATEGY_FIRST_COLUMN = "first_column"
STATE_ASSIGNMENT_STRATEGIES = (STRATEGY_INFER, STRATEGY_FIRST_COLUMN)

# Column created by the legacy sweep when the board is empty
FALLBACK_STATE_NAME = "Default"
FALLBACK_STATE_COLOR = "#6b7280"


def touch_timestamp(now: int, created_at_column=DBNote.created_at):
    """SQL expression for a new ``updated_at`` that never precedes ``created_at``."""
    return func.max(now, func.coalesce(created_at_column, now))


def db_note_to_model(db_note: DBNote) -> Note:
    """Convert a row to a ``Note``. Bad label JSON decodes to an empty list."""
    return Note(
        id=db_note.id,
        title=db_note.title,
        content=db_note.content,
        created_at=from_epoch(db_note.created_at),
        updated_at=from_epoch(db_note.updated_at),
        priority=db_note.priority or 0,
        labels=deserialize_labels(db_note.labels),
        deadline=from_epoch(db_note.deadline),
        reminder_minutes=db_note.reminder_minutes or 0,
        done=bool(db_note.done),
        state_id=db_note.state_id,
        order=db_note.order or 0,
    )


class NoteRepository:
    """CRUD, search and state assignment for notes.

    Args:
        database: The store to operate on.
        default_limit: Search page size when the caller gives none.
        max_limit: Upper bound applied to any requested search page size.
    """

    def __init__(
        self,
        database: Database,
        default_limit: Optional[int] = None,
        max_limit: Optional[int] = None,
    ) -> None:
        self.database = database
        self.default_limit = default_limit or config.search_default_limit
        self.max_limit = max_limit or config.search_max_limit
        self.fts_index = FtsIndex(database)

    def create(self, request: CreateNoteRequest) -> Note:
        """Insert a note and return it as stored."""
        labels = serialize_labels(request.labels)
        now = to_epoch(utc_now())
        db_note = DBNote(
            title=request.title,
            content=request.content,
            created_at=now,
            updated_at=now,
            priority=request.priority if request.priority is not None else 0,
            labels=labels,
            deadline=to_epoch(request.deadline),
            reminder_minutes=(
                request.reminder_minutes if request.reminder_minutes is not None else 0
            ),
            done=bool(request.done),
            state_id=request.state_id,
            order=request.order if request.order is not None else 0,
        )
        try:
            with self.database.session() as session:
                session.add(db_note)
                session.flush()
                session.refresh(db_note)
                note = db_note_to_model(db_note)
        except SQLAlchemyError as e:
            raise StorageError(
                "Failed to create note",
                operation="create",
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e
        logger.info(f"Created note {note.id}")
        return note

    def get(self, note_id: int) -> Optional[Note]:
        try:
            with self.database.session() as session:
                db_note = session.get(DBNote, note_id)
                return db_note_to_model(db_note) if db_note else None
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to read note {note_id}",
                operation="get",
                original_error=e,
            ) from e

    def get_all(self, limit: Optional[int] = None, offset: int = 0) -> List[Note]:
        """Return notes in board order: ``order`` ascending, then most recently updated."""
        stmt = select(DBNote).order_by(
            DBNote.order.asc(), DBNote.updated_at.desc(), DBNote.id.desc()
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)
        try:
            with self.database.session() as session:
                return [db_note_to_model(n) for n in session.execute(stmt).scalars()]
        except SQLAlchemyError as e:
            raise StorageError(
                "Failed to list notes",
                operation="get_all",
                original_error=e,
            ) from e

    def _build_patch(self, request: UpdateNoteRequest) -> Dict[str, Any]:
        """Translate supplied fields into column values.

        Raises:
            ValidationError: If nothing was supplied.
        """
        changed = request.changed_fields()
        if not changed:
            raise ValidationError(
                "No fields to update", field="id", value=request.id,
                code=ErrorCode.NOTE_NO_FIELDS,
            )
        values: Dict[str, Any] = {}
        for name, value in changed.items():
            if name == "labels":
                values["labels"] = serialize_labels(value)
            elif name == "deadline":
                values["deadline"] = to_epoch(value)
            else:
                values[name] = value
        return values

    def update(self, request: UpdateNoteRequest) -> Optional[Note]:
        """Apply a partial update.

        Returns:
            The updated note, or None if no note has that id.

        Raises:
            ValidationError: If the request supplies no fields.
        """
        values = self._build_patch(request)
        values["updated_at"] = touch_timestamp(to_epoch(utc_now()))
        stmt = (
            update(DBNote)
            .where(DBNote.id == request.id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            with self.database.session() as session:
                result = session.execute(stmt)
                if result.rowcount == 0:
                    return None
                db_note = session.get(DBNote, request.id, populate_existing=True)
                note = db_note_to_model(db_note)
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to update note {request.id}",
                operation="update",
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e
        logger.info(f"Updated note {note.id}: {sorted(values)}")
        return note

    def update_done(self, note_id: int, done: bool) -> Optional[Note]:
        """Set only the completion flag (and the update timestamp)."""
        stmt = (
            update(DBNote)
            .where(DBNote.id == note_id)
            .values(done=done, updated_at=touch_timestamp(to_epoch(utc_now())))
            .execution_options(synchronize_session=False)
        )
        try:
            with self.database.session() as session:
                if session.execute(stmt).rowcount == 0:
                    return None
                db_note = session.get(DBNote, note_id, populate_existing=True)
                return db_note_to_model(db_note)
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to update note {note_id}",
                operation="update_done",
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e

    def delete(self, note_id: int) -> Optional[Note]:
        """Delete a note.

        Returns:
            The note as it was before deletion, or None if it did not exist.
        """
        try:
            with self.database.session() as session:
                db_note = session.get(DBNote, note_id)
                if db_note is None:
                    return None
                note = db_note_to_model(db_note)
                session.delete(db_note)
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to delete note {note_id}",
                operation="delete",
                code=ErrorCode.STORAGE_DELETE_FAILED,
                original_error=e,
            ) from e
        logger.info(f"Deleted note {note_id}")
        return note

    def _resolve_page(self, limit: Optional[int], offset: Optional[int]) -> tuple:
        if limit is not None and limit < 1:
            raise ValidationError("limit must be at least 1", field="limit", value=limit)
        if offset is not None and offset < 0:
            raise ValidationError("offset must not be negative", field="offset", value=offset)
        limit = min(limit if limit is not None else self.default_limit, self.max_limit)
        return limit, offset or 0

    def search(
        self,
        query: str,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Note]:
        """Search notes by title and content.

        An empty (or whitespace-only) query returns the default listing,
        paginated the same way.

        Raises:
            ValidationError: If limit < 1 or offset < 0.
        """
        limit, offset = self._resolve_page(limit, offset)
        query = (query or "").strip()
        if not query:
            return self.get_all(limit=limit, offset=offset)

        try:
            rows, mode = self.fts_index.search(query, limit, offset)
            notes = [db_note_to_model(row) for row in rows]
        except SQLAlchemyError as e:
            raise StorageError(
                "Search failed",
                operation="search",
                original_error=e,
            ) from e
        logger.debug(f"Search '{query}' ({mode}) returned {len(notes)} notes")
        return notes

    def assign_unassigned_states(self, strategy: str = STRATEGY_INFER) -> int:
        """Place every note without a state into a kanban column.

        Strategies:
            infer: done notes go to "Done", notes labelled with "progress"
                go to "In Progress", the rest to "To Do". Notes whose
                target column does not exist are left alone.
            first_column: every unassigned note goes to the lowest-position
                column, creating "Default" if the board is empty.

        Returns:
            Number of notes assigned.
        """
        if strategy not in STATE_ASSIGNMENT_STRATEGIES:
            raise ValidationError(
                f"Unknown state assignment strategy '{strategy}'",
                field="strategy", value=strategy,
            )
        now = to_epoch(utc_now())
        try:
            with self.database.session() as session:
                if strategy == STRATEGY_FIRST_COLUMN:
                    assigned = self._assign_first_column(session, now)
                else:
                    assigned = self._assign_inferred(session, now)
        except SQLAlchemyError as e:
            raise StorageError(
                "Failed to assign note states",
                operation="assign_states",
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e
        logger.info(f"Assigned {assigned} notes to states ({strategy})")
        return assigned

    @staticmethod
    def _infer_state_name(db_note: DBNote) -> str:
        if db_note.done:
            return "done"
        labels = [label.lower() for label in deserialize_labels(db_note.labels)]
        if any("progress" in label for label in labels):
            return "in progress"
        return "to do"

    def _assign_inferred(self, session, now: int) -> int:
        states = session.execute(
            select(DBState).order_by(DBState.position.asc(), DBState.id.asc())
        ).scalars().all()
        by_name: Dict[str, int] = {}
        for state in states:
            by_name.setdefault(state.name.strip().lower(), state.id)

        assigned = 0
        unassigned = session.execute(
            select(DBNote).where(DBNote.state_id.is_(None))
        ).scalars().all()
        for db_note in unassigned:
            state_id = by_name.get(self._infer_state_name(db_note))
            if state_id is None:
                continue
            db_note.state_id = state_id
            db_note.updated_at = max(now, db_note.created_at or now)
            assigned += 1
        return assigned

    def _assign_first_column(self, session, now: int) -> int:
        first = session.execute(
            select(DBState).order_by(DBState.position.asc(), DBState.id.asc()).limit(1)
        ).scalar()
        if first is None:
            first = DBState(
                name=FALLBACK_STATE_NAME,
                color=FALLBACK_STATE_COLOR,
                position=0,
                created_at=now,
                updated_at=now,
            )
            session.add(first)
            session.flush()
            logger.info(f"Created fallback state '{FALLBACK_STATE_NAME}'")
        result = session.execute(
            update(DBNote)
            .where(DBNote.state_id.is_(None))
            .values(state_id=first.id, updated_at=touch_timestamp(now))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
