"""Storage layer for Juan Note."""

from juan_note.storage.bulk_operations import BulkNoteOperations, BulkResult
from juan_note.storage.database import Database
from juan_note.storage.fts_index import FtsIndex
from juan_note.storage.note_repository import NoteRepository
from juan_note.storage.state_repository import StateRepository

__all__ = [
    "BulkNoteOperations",
    "BulkResult",
    "Database",
    "FtsIndex",
    "NoteRepository",
    "StateRepository",
]
