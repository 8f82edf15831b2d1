"""Dependency injection utilities."""
from fastapi import Request

from juan_note.services.note_service import NoteService


def get_service(request: Request) -> NoteService:
    """Return the service the application was created with."""
    return request.app.state.service
