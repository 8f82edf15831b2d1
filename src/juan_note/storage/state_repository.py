"""Repository for kanban state storage and retrieval."""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from juan_note.exceptions import ErrorCode, StorageError, ValidationError
from juan_note.models.db_models import DBNote, DBState
from juan_note.models.schema import (
    CreateStateRequest,
    State,
    UpdateStateRequest,
    from_epoch,
    to_epoch,
    utc_now,
)
from juan_note.storage.database import Database
from juan_note.storage.note_repository import touch_timestamp

logger = logging.getLogger(__name__)


def db_state_to_model(db_state: DBState) -> State:
    return State(
        id=db_state.id,
        name=db_state.name,
        color=db_state.color,
        position=db_state.position or 0,
        created_at=from_epoch(db_state.created_at),
        updated_at=from_epoch(db_state.updated_at),
    )


class StateRepository:
    """Repository for kanban columns.

    Deleting a state detaches its notes (``state_id`` becomes NULL) in the
    same transaction, so notes never reference a missing column.
    """

    def __init__(self, database: Database) -> None:
        self.database = database

    def create(self, request: CreateStateRequest) -> State:
        now = to_epoch(utc_now())
        db_state = DBState(
            name=request.name,
            color=request.color,
            position=request.position,
            created_at=now,
            updated_at=now,
        )
        try:
            with self.database.session() as session:
                session.add(db_state)
                session.flush()
                session.refresh(db_state)
                state = db_state_to_model(db_state)
        except SQLAlchemyError as e:
            raise StorageError(
                "Failed to create state",
                operation="create_state",
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e
        logger.info(f"Created state {state.id} '{state.name}'")
        return state

    def get(self, state_id: int) -> Optional[State]:
        try:
            with self.database.session() as session:
                db_state = session.get(DBState, state_id)
                return db_state_to_model(db_state) if db_state else None
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to read state {state_id}",
                operation="get_state",
                original_error=e,
            ) from e

    def get_all(self) -> List[State]:
        """Return all states ordered by board position."""
        stmt = select(DBState).order_by(DBState.position.asc(), DBState.id.asc())
        try:
            with self.database.session() as session:
                return [db_state_to_model(s) for s in session.execute(stmt).scalars()]
        except SQLAlchemyError as e:
            raise StorageError(
                "Failed to list states",
                operation="get_all_states",
                original_error=e,
            ) from e

    def update(self, request: UpdateStateRequest) -> Optional[State]:
        """Apply a partial update.

        Raises:
            ValidationError: If the request supplies no fields.
        """
        values: Dict[str, Any] = request.changed_fields()
        if not values:
            raise ValidationError(
                "No fields to update", field="id", value=request.id,
                code=ErrorCode.STATE_NO_FIELDS,
            )
        values["updated_at"] = touch_timestamp(to_epoch(utc_now()), DBState.created_at)
        stmt = (
            update(DBState)
            .where(DBState.id == request.id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            with self.database.session() as session:
                if session.execute(stmt).rowcount == 0:
                    return None
                db_state = session.get(DBState, request.id, populate_existing=True)
                state = db_state_to_model(db_state)
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to update state {request.id}",
                operation="update_state",
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e
        logger.info(f"Updated state {state.id}")
        return state

    def delete(self, state_id: int) -> Optional[State]:
        """Delete a state and detach the notes that referenced it.

        Returns:
            The state as it was before deletion, or None if it did not exist.
        """
        now = to_epoch(utc_now())
        try:
            with self.database.session() as session:
                db_state = session.get(DBState, state_id)
                if db_state is None:
                    return None
                state = db_state_to_model(db_state)
                detached = session.execute(
                    update(DBNote)
                    .where(DBNote.state_id == state_id)
                    .values(state_id=None, updated_at=touch_timestamp(now))
                    .execution_options(synchronize_session=False)
                ).rowcount
                session.delete(db_state)
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to delete state {state_id}",
                operation="delete_state",
                code=ErrorCode.STORAGE_DELETE_FAILED,
                original_error=e,
            ) from e
        logger.info(f"Deleted state {state_id}, detached {detached} notes")
        return state
