"""Service layer for Juan Note.

One command surface shared by the desktop bridge, the HTTP facade and the
MCP server. Every method returns a response envelope. "Not found" is an
envelope with ``success=False``; invalid input raises ``ValidationError``
and storage failures raise ``StorageError`` so each transport can map them.
"""

import logging
from typing import Optional

from juan_note.config import config
from juan_note.exceptions import MigrationError
from juan_note.models.schema import (
    BulkDeleteRequest,
    BulkOperationResponse,
    BulkUpdateDoneRequest,
    BulkUpdateOrderRequest,
    BulkUpdatePriorityRequest,
    BulkUpdateStateRequest,
    CreateNoteRequest,
    CreateStateRequest,
    DeleteNoteRequest,
    MigrationResponse,
    NoteResponse,
    NotesListResponse,
    SearchRequest,
    StateAssignmentResponse,
    StateResponse,
    StatesListResponse,
    UpdateNoteDoneRequest,
    UpdateNoteRequest,
    UpdateStateRequest,
)
from juan_note.observability import timed_operation
from juan_note.storage.bulk_operations import BulkNoteOperations, BulkResult
from juan_note.storage.database import Database
from juan_note.storage.migrations import MigrationRunner
from juan_note.storage.note_repository import STRATEGY_INFER, NoteRepository
from juan_note.storage.state_repository import StateRepository

logger = logging.getLogger(__name__)

NOTE_NOT_FOUND = "Note not found"
STATE_NOT_FOUND = "State not found"


def _bulk_response(result: BulkResult) -> BulkOperationResponse:
    return BulkOperationResponse(
        success=True,
        successful_count=result.successful_count,
        failed_count=result.failed_count,
        errors=result.errors or None,
    )


class NoteService:
    """Note and kanban operations over one ``Database``."""

    def __init__(
        self,
        database: Database,
        search_default_limit: Optional[int] = None,
        search_max_limit: Optional[int] = None,
    ) -> None:
        self.database = database
        self.notes = NoteRepository(
            database,
            default_limit=search_default_limit or config.search_default_limit,
            max_limit=search_max_limit or config.search_max_limit,
        )
        self.states = StateRepository(database)
        self.bulk = BulkNoteOperations(database)

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def initialize_db(self) -> MigrationResponse:
        """Bring the schema up to date and report what ran."""
        with timed_operation("initialize_db") as op:
            try:
                applied = self.database.initialize()
            except MigrationError as e:
                logger.error(f"Database initialization failed: {e}")
                return MigrationResponse(
                    success=False,
                    current_version=MigrationRunner(self.database).current_version(),
                    error=e.message,
                )
            op["applied"] = applied
            return MigrationResponse(
                success=True,
                applied_versions=applied,
                current_version=MigrationRunner(self.database).current_version(),
            )

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    def create_note(self, request: CreateNoteRequest) -> NoteResponse:
        with timed_operation("create_note", title=request.title[:30]) as op:
            note = self.notes.create(request)
            op["note_id"] = note.id
            return NoteResponse(success=True, data=note)

    def get_note(self, note_id: int) -> NoteResponse:
        with timed_operation("get_note", note_id=note_id):
            note = self.notes.get(note_id)
            if note is None:
                return NoteResponse(success=False, error=NOTE_NOT_FOUND)
            return NoteResponse(success=True, data=note)

    def get_all_notes(self) -> NotesListResponse:
        with timed_operation("get_all_notes") as op:
            notes = self.notes.get_all()
            op["result_count"] = len(notes)
            return NotesListResponse(success=True, data=notes)

    def update_note(self, request: UpdateNoteRequest) -> NoteResponse:
        with timed_operation("update_note", note_id=request.id):
            note = self.notes.update(request)
            if note is None:
                return NoteResponse(success=False, error=NOTE_NOT_FOUND)
            return NoteResponse(success=True, data=note)

    def update_note_done(self, request: UpdateNoteDoneRequest) -> NoteResponse:
        with timed_operation("update_note_done", note_id=request.id, done=request.done):
            note = self.notes.update_done(request.id, request.done)
            if note is None:
                return NoteResponse(success=False, error=NOTE_NOT_FOUND)
            return NoteResponse(success=True, data=note)

    def delete_note(self, request: DeleteNoteRequest) -> NoteResponse:
        with timed_operation("delete_note", note_id=request.id):
            note = self.notes.delete(request.id)
            if note is None:
                return NoteResponse(success=False, error=NOTE_NOT_FOUND)
            return NoteResponse(success=True, data=note)

    def search_notes(self, request: SearchRequest) -> NotesListResponse:
        with timed_operation("search_notes", query=request.query[:30]) as op:
            notes = self.notes.search(request.query, request.limit, request.offset)
            op["result_count"] = len(notes)
            return NotesListResponse(success=True, data=notes)

    # ------------------------------------------------------------------
    # States
    # ------------------------------------------------------------------

    def get_all_states(self) -> StatesListResponse:
        with timed_operation("get_all_states"):
            return StatesListResponse(success=True, data=self.states.get_all())

    def create_state(self, request: CreateStateRequest) -> StateResponse:
        with timed_operation("create_state", name=request.name[:30]):
            return StateResponse(success=True, data=self.states.create(request))

    def update_state(self, request: UpdateStateRequest) -> StateResponse:
        with timed_operation("update_state", state_id=request.id):
            state = self.states.update(request)
            if state is None:
                return StateResponse(success=False, error=STATE_NOT_FOUND)
            return StateResponse(success=True, data=state)

    def delete_state(self, state_id: int) -> StateResponse:
        with timed_operation("delete_state", state_id=state_id):
            state = self.states.delete(state_id)
            if state is None:
                return StateResponse(success=False, error=STATE_NOT_FOUND)
            return StateResponse(success=True, data=state)

    def migrate_notes_to_states(self, strategy: str = STRATEGY_INFER) -> StateAssignmentResponse:
        """Sweep notes without a column onto the board."""
        with timed_operation("migrate_notes_to_states", strategy=strategy) as op:
            assigned = self.notes.assign_unassigned_states(strategy)
            op["assigned"] = assigned
            return StateAssignmentResponse(
                success=True,
                assigned_count=assigned,
                message=f"Assigned {assigned} notes to states",
            )

    # ------------------------------------------------------------------
    # Bulk
    # ------------------------------------------------------------------

    def bulk_delete_notes(self, request: BulkDeleteRequest) -> BulkOperationResponse:
        with timed_operation("bulk_delete_notes", count=len(request.note_ids)):
            return _bulk_response(self.bulk.delete(request.note_ids))

    def bulk_update_notes_priority(
        self, request: BulkUpdatePriorityRequest
    ) -> BulkOperationResponse:
        with timed_operation("bulk_update_notes_priority", count=len(request.note_ids)):
            return _bulk_response(self.bulk.set_priority(request.note_ids, request.priority))

    def bulk_update_notes_done(self, request: BulkUpdateDoneRequest) -> BulkOperationResponse:
        with timed_operation("bulk_update_notes_done", count=len(request.note_ids)):
            return _bulk_response(self.bulk.set_done(request.note_ids, request.done))

    def bulk_update_notes_state(self, request: BulkUpdateStateRequest) -> BulkOperationResponse:
        with timed_operation("bulk_update_notes_state", count=len(request.note_ids)):
            return _bulk_response(self.bulk.set_state(request.note_ids, request.state_id))

    def bulk_update_notes_order(self, request: BulkUpdateOrderRequest) -> BulkOperationResponse:
        with timed_operation("bulk_update_notes_order", count=len(request.note_ids)):
            return _bulk_response(self.bulk.set_order(request.note_ids, request.orders))
