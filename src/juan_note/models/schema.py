"""Data models for Juan Note.

Entities, request payloads and response envelopes shared by the desktop
bridge, the HTTP facade and the MCP server.
"""

import datetime
import json
from datetime import timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from juan_note.exceptions import LabelSerializationError

# Patch fields that may be explicitly cleared with null
NULLABLE_NOTE_FIELDS = frozenset({"deadline", "state_id"})
NULLABLE_STATE_FIELDS = frozenset({"color"})


def utc_now() -> datetime.datetime:
    """Get the current time in UTC.

    Returns:
        A timezone-aware datetime with microseconds dropped, since the
        store keeps whole seconds.
    """
    return datetime.datetime.now(timezone.utc).replace(microsecond=0)


def to_epoch(dt_value: Optional[datetime.datetime]) -> Optional[int]:
    """Convert a datetime to integer seconds since the Unix epoch.

    Naive datetimes are treated as UTC.
    """
    if dt_value is None:
        return None
    if dt_value.tzinfo is None:
        dt_value = dt_value.replace(tzinfo=timezone.utc)
    return int(dt_value.timestamp())


def from_epoch(value: Optional[int]) -> Optional[datetime.datetime]:
    """Convert integer epoch seconds back to a UTC datetime."""
    if value is None:
        return None
    return datetime.datetime.fromtimestamp(int(value), tz=timezone.utc)


def serialize_labels(labels: Optional[List[str]]) -> str:
    """Encode a label list as the JSON text stored in ``notes.labels``.

    Raises:
        LabelSerializationError: If the list holds anything but strings or
            cannot be encoded.
    """
    labels = list(labels or [])
    for label in labels:
        if not isinstance(label, str):
            raise LabelSerializationError(
                f"Labels must be strings, got {type(label).__name__}"
            )
    try:
        return json.dumps(labels, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise LabelSerializationError(
            "Failed to serialize labels", original_error=e
        ) from e


def deserialize_labels(text: Optional[str]) -> List[str]:
    """Decode stored label JSON.

    Malformed JSON, a non-array document or non-string items all decode to
    an empty list so a bad row never breaks reads.
    """
    if not text:
        return []
    try:
        value = json.loads(text)
    except (TypeError, ValueError):
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        return []
    return value


class Note(BaseModel):
    """A note as returned to callers."""
    id: int
    title: str
    content: str
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None
    priority: int = 0
    labels: List[str] = Field(default_factory=list)
    deadline: Optional[datetime.datetime] = None
    reminder_minutes: int = 0
    done: bool = False
    state_id: Optional[int] = None
    order: int = 0


class State(BaseModel):
    """A kanban column."""
    id: int
    name: str
    color: Optional[str] = None
    position: int = 0
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None


class CreateNoteRequest(BaseModel):
    """Payload for creating a note; only title and content are required."""
    title: str
    content: str
    priority: Optional[int] = None
    labels: Optional[List[str]] = None
    deadline: Optional[datetime.datetime] = None
    reminder_minutes: Optional[int] = None
    done: Optional[bool] = None
    state_id: Optional[int] = None
    order: Optional[int] = None


class UpdateNotePatch(BaseModel):
    """Partial note update body.

    Only fields present in the payload take part in the update. For fields
    that cannot be null in the store a null value counts as absent; for
    ``deadline`` and ``state_id`` an explicit null clears the column.
    """
    title: Optional[str] = None
    content: Optional[str] = None
    priority: Optional[int] = None
    labels: Optional[List[str]] = None
    deadline: Optional[datetime.datetime] = None
    reminder_minutes: Optional[int] = None
    done: Optional[bool] = None
    state_id: Optional[int] = None
    order: Optional[int] = None

    def changed_fields(self) -> Dict[str, Any]:
        """Return the supplied fields that should be written."""
        changed = {}
        for name in self.model_fields_set:
            if name not in UpdateNotePatch.model_fields:
                continue
            value = getattr(self, name)
            if value is None and name not in NULLABLE_NOTE_FIELDS:
                continue
            changed[name] = value
        return changed


class UpdateNoteRequest(UpdateNotePatch):
    """Partial note update addressed by id."""
    id: int


class UpdateNoteDoneRequest(BaseModel):
    id: int
    done: bool


class DeleteNoteRequest(BaseModel):
    id: int


class SearchRequest(BaseModel):
    """Search payload; an empty query lists notes in default order."""
    query: str = ""
    limit: Optional[int] = None
    offset: Optional[int] = None


class CreateStateRequest(BaseModel):
    name: str
    color: Optional[str] = None
    position: int = 0

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("State name cannot be empty")
        return v


class UpdateStatePatch(BaseModel):
    """Partial state update body; an explicit null clears ``color``."""
    name: Optional[str] = None
    color: Optional[str] = None
    position: Optional[int] = None

    def changed_fields(self) -> Dict[str, Any]:
        """Return the supplied fields that should be written."""
        changed = {}
        for name in self.model_fields_set:
            if name not in UpdateStatePatch.model_fields:
                continue
            value = getattr(self, name)
            if value is None and name not in NULLABLE_STATE_FIELDS:
                continue
            changed[name] = value
        return changed


class UpdateStateRequest(UpdateStatePatch):
    id: int


class BulkDeleteRequest(BaseModel):
    note_ids: List[int]


class BulkUpdatePriorityRequest(BaseModel):
    note_ids: List[int]
    priority: int


class BulkUpdateDoneRequest(BaseModel):
    note_ids: List[int]
    done: bool


class BulkUpdateStateRequest(BaseModel):
    note_ids: List[int]
    state_id: Optional[int] = None


class BulkUpdateOrderRequest(BaseModel):
    """Positional order update: ``orders[i]`` applies to ``note_ids[i]``."""
    note_ids: List[int]
    orders: List[int] = Field(default_factory=list)


class NoteResponse(BaseModel):
    success: bool
    data: Optional[Note] = None
    error: Optional[str] = None


class NotesListResponse(BaseModel):
    success: bool
    data: Optional[List[Note]] = None
    error: Optional[str] = None


class StateResponse(BaseModel):
    success: bool
    data: Optional[State] = None
    error: Optional[str] = None


class StatesListResponse(BaseModel):
    success: bool
    data: Optional[List[State]] = None
    error: Optional[str] = None


class BulkOperationResponse(BaseModel):
    success: bool
    successful_count: int = 0
    failed_count: int = 0
    errors: Optional[List[str]] = None
    error: Optional[str] = None


class StateAssignmentResponse(BaseModel):
    """Result of sweeping unassigned notes into kanban columns."""
    success: bool
    assigned_count: int = 0
    message: Optional[str] = None
    error: Optional[str] = None


class MigrationResponse(BaseModel):
    """Result of bringing the schema up to date."""
    success: bool
    applied_versions: List[int] = Field(default_factory=list)
    current_version: int = 0
    error: Optional[str] = None
