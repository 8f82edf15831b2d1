"""Bulk note routes.

Bulk responses report per-item failures in ``errors`` while still
returning ``success=True`` for the batch as a whole.
"""
from typing import Annotated

from fastapi import APIRouter, Depends

from juan_note.api.deps import get_service
from juan_note.models.schema import (
    BulkDeleteRequest,
    BulkOperationResponse,
    BulkUpdateDoneRequest,
    BulkUpdateOrderRequest,
    BulkUpdatePriorityRequest,
    BulkUpdateStateRequest,
)
from juan_note.services.note_service import NoteService

BULK_PREFIX = "/bulk/notes"

router = APIRouter(prefix=BULK_PREFIX, tags=["Bulk"])

Service = Annotated[NoteService, Depends(get_service)]


@router.post("/delete", response_model=BulkOperationResponse)
def bulk_delete(request: BulkDeleteRequest, service: Service) -> BulkOperationResponse:
    return service.bulk_delete_notes(request)


@router.patch("/priority", response_model=BulkOperationResponse)
def bulk_update_priority(
    request: BulkUpdatePriorityRequest, service: Service
) -> BulkOperationResponse:
    return service.bulk_update_notes_priority(request)


@router.patch("/done", response_model=BulkOperationResponse)
def bulk_update_done(request: BulkUpdateDoneRequest, service: Service) -> BulkOperationResponse:
    return service.bulk_update_notes_done(request)


@router.patch("/state", response_model=BulkOperationResponse)
def bulk_update_state(request: BulkUpdateStateRequest, service: Service) -> BulkOperationResponse:
    return service.bulk_update_notes_state(request)


@router.patch("/order", response_model=BulkOperationResponse)
def bulk_update_order(request: BulkUpdateOrderRequest, service: Service) -> BulkOperationResponse:
    return service.bulk_update_notes_order(request)
