"""Note routes."""
from typing import Annotated, Any, Dict, Optional

from fastapi import APIRouter, Body, Depends

from juan_note.api.deps import get_service
from juan_note.models.schema import (
    CreateNoteRequest,
    DeleteNoteRequest,
    NoteResponse,
    NotesListResponse,
    SearchRequest,
    UpdateNoteDoneRequest,
    UpdateNotePatch,
    UpdateNoteRequest,
)
from juan_note.services.note_service import NoteService

router = APIRouter(prefix="/notes", tags=["Notes"])

Service = Annotated[NoteService, Depends(get_service)]


@router.get("", response_model=NotesListResponse)
def get_all_notes(service: Service) -> NotesListResponse:
    return service.get_all_notes()


@router.post("", response_model=NoteResponse)
def create_note(request: CreateNoteRequest, service: Service) -> NoteResponse:
    return service.create_note(request)


@router.post("/search", response_model=NotesListResponse)
def search_notes(request: SearchRequest, service: Service) -> NotesListResponse:
    return service.search_notes(request)


@router.get("/{note_id}", response_model=NoteResponse)
def get_note(note_id: int, service: Service) -> NoteResponse:
    return service.get_note(note_id)


@router.put("/{note_id}", response_model=NoteResponse)
def update_note(note_id: int, patch: UpdateNotePatch, service: Service) -> NoteResponse:
    """Apply a partial update; the id comes from the path."""
    supplied = patch.model_dump(include=patch.model_fields_set)
    return service.update_note(UpdateNoteRequest(id=note_id, **supplied))


@router.delete("/{note_id}", response_model=NoteResponse)
def delete_note(note_id: int, service: Service) -> NoteResponse:
    return service.delete_note(DeleteNoteRequest(id=note_id))


@router.patch("/{note_id}/done", response_model=NoteResponse)
def update_note_done(
    note_id: int,
    service: Service,
    body: Annotated[Optional[Dict[str, Any]], Body()] = None,
) -> NoteResponse:
    """Set the done flag. A missing or non-boolean ``done`` means false."""
    value = (body or {}).get("done")
    done = value if isinstance(value, bool) else False
    return service.update_note_done(UpdateNoteDoneRequest(id=note_id, done=done))
