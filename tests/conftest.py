"""Common test fixtures for Juan Note."""

import tempfile
from pathlib import Path

import pytest

from juan_note.config import config
from juan_note.models.schema import CreateNoteRequest
from juan_note.observability import metrics
from juan_note.services.note_service import NoteService
from juan_note.storage.bulk_operations import BulkNoteOperations
from juan_note.storage.database import Database
from juan_note.storage.note_repository import NoteRepository
from juan_note.storage.state_repository import StateRepository


@pytest.fixture
def temp_dirs():
    """Create temporary directories for the database and logs."""
    with tempfile.TemporaryDirectory() as db_dir:
        with tempfile.TemporaryDirectory() as log_dir:
            yield Path(db_dir), Path(log_dir)


@pytest.fixture
def test_config(temp_dirs, monkeypatch):
    """Configure with test paths (auto-restored even on crash)."""
    db_dir, log_dir = temp_dirs
    monkeypatch.setattr(config, "database_path", db_dir / "test_notes.db")
    monkeypatch.setattr(config, "log_dir", log_dir)
    yield config


@pytest.fixture(autouse=True)
def _reset_metrics():
    """Keep the global metrics collector isolated per test."""
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def database(test_config):
    """A fresh, fully migrated file-backed database."""
    db = Database(database_path=test_config.database_path)
    db.initialize()
    yield db
    db.dispose()


@pytest.fixture
def memory_database():
    """A fresh, fully migrated in-memory database."""
    db = Database.in_memory()
    db.initialize()
    yield db
    db.dispose()


@pytest.fixture
def note_repository(database):
    return NoteRepository(database)


@pytest.fixture
def state_repository(database):
    return StateRepository(database)


@pytest.fixture
def bulk_operations(database):
    return BulkNoteOperations(database)


@pytest.fixture
def note_service(database):
    return NoteService(database)


@pytest.fixture
def make_note(note_repository):
    """Factory creating notes with sensible defaults."""
    def _make(title="Note", content="Body", **fields):
        return note_repository.create(CreateNoteRequest(title=title, content=content, **fields))
    return _make
