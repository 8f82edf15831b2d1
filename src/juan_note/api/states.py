"""Kanban state routes."""
from typing import Annotated

from fastapi import APIRouter, Depends

from juan_note.api.deps import get_service
from juan_note.models.schema import (
    CreateStateRequest,
    StateResponse,
    StatesListResponse,
    UpdateStatePatch,
    UpdateStateRequest,
)
from juan_note.services.note_service import NoteService

router = APIRouter(prefix="/states", tags=["States"])

Service = Annotated[NoteService, Depends(get_service)]


@router.get("", response_model=StatesListResponse)
def get_all_states(service: Service) -> StatesListResponse:
    return service.get_all_states()


@router.post("", response_model=StateResponse)
def create_state(request: CreateStateRequest, service: Service) -> StateResponse:
    return service.create_state(request)


@router.put("/{state_id}", response_model=StateResponse)
def update_state(state_id: int, patch: UpdateStatePatch, service: Service) -> StateResponse:
    supplied = patch.model_dump(include=patch.model_fields_set)
    return service.update_state(UpdateStateRequest(id=state_id, **supplied))


@router.delete("/{state_id}", response_model=StateResponse)
def delete_state(state_id: int, service: Service) -> StateResponse:
    return service.delete_state(state_id)
