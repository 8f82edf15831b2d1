"""MCP server exposing notes and kanban states as tools."""

import logging
from datetime import datetime
from typing import List, Optional

from mcp.server.fastmcp import FastMCP

from juan_note.config import JuanNoteConfig, config
from juan_note.exceptions import JuanNoteError
from juan_note.models.schema import (
    BulkDeleteRequest,
    BulkOperationResponse,
    BulkUpdateDoneRequest,
    CreateNoteRequest,
    CreateStateRequest,
    DeleteNoteRequest,
    Note,
    SearchRequest,
    UpdateNoteDoneRequest,
    UpdateNoteRequest,
)
from juan_note.observability import metrics, timed_operation
from juan_note.services.note_service import NoteService
from juan_note.utils import new_reference_id

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 500
MAX_CONTENT_LENGTH = 1_000_000  # 1 MB
CONTENT_PREVIEW_LENGTH = 200


def _validate_input_lengths(
    title: Optional[str] = None, content: Optional[str] = None
) -> None:
    """Validate input string lengths at the MCP boundary."""
    if title and len(title) > MAX_TITLE_LENGTH:
        raise ValueError(
            f"Title exceeds maximum length of {MAX_TITLE_LENGTH} characters"
        )
    if content and len(content) > MAX_CONTENT_LENGTH:
        raise ValueError(
            f"Content exceeds maximum length of {MAX_CONTENT_LENGTH} characters"
        )


def _parse_labels(labels: Optional[str]) -> Optional[List[str]]:
    """Split a comma-separated label string."""
    if labels is None:
        return None
    return [label.strip() for label in labels.split(",") if label.strip()]


def _parse_ids(note_ids: str) -> List[int]:
    """Parse a comma-separated id list such as ``"1, 2, 3"``."""
    try:
        return [int(part) for part in note_ids.split(",") if part.strip()]
    except ValueError as e:
        raise ValueError(f"Note ids must be integers: {note_ids}") from e


def _parse_deadline(deadline: Optional[str]) -> Optional[datetime]:
    if not deadline:
        return None
    return datetime.fromisoformat(deadline.replace("Z", "+00:00"))


def _format_note(note: Note, full: bool = True) -> str:
    status = "done" if note.done else "open"
    lines = [f"# {note.title}", f"ID: {note.id} | Status: {status} | Priority: {note.priority}"]
    if note.labels:
        lines.append(f"Labels: {', '.join(note.labels)}")
    if note.state_id is not None:
        lines.append(f"State: {note.state_id}")
    if note.deadline:
        lines.append(f"Deadline: {note.deadline.isoformat()}")
    if note.updated_at:
        lines.append(f"Updated: {note.updated_at.isoformat()}")
    content = note.content
    if not full and len(content) > CONTENT_PREVIEW_LENGTH:
        content = content[:CONTENT_PREVIEW_LENGTH] + "..."
    lines.extend(["", content])
    return "\n".join(lines)


def _format_note_line(note: Note) -> str:
    check = "x" if note.done else " "
    labels = f" [{', '.join(note.labels)}]" if note.labels else ""
    return f"- [{check}] {note.title} (ID: {note.id}, priority {note.priority}){labels}"


def _format_bulk(action: str, response: BulkOperationResponse) -> str:
    text = f"{action}: {response.successful_count} succeeded, {response.failed_count} failed"
    if response.errors:
        text += "\n" + "\n".join(f"- {error}" for error in response.errors)
    return text


class JuanNoteMcpServer:
    """MCP server for Juan Note.

    Tools call the note service in-process and always answer with text;
    failures are reported as messages, never raised through the protocol.
    """

    def __init__(self, service: NoteService, app_config: Optional[JuanNoteConfig] = None):
        """Initialize the MCP server.

        Args:
            service: Note service backed by an initialized database.
            app_config: Settings for the server identity.
        """
        app_config = app_config or config
        self.service = service
        self.mcp = FastMCP(
            app_config.server_name,
            instructions="Read and manage Juan Note notes and kanban states.",
        )
        self._register_tools()
        logger.info("Juan Note MCP server initialized")

    def format_error_response(self, error: Exception) -> str:
        """Format an error response in a consistent way.

        Args:
            error: The exception that occurred

        Returns:
            Formatted error message with appropriate level of detail
        """
        # Generate a unique error ID for traceability in logs
        error_id = new_reference_id()

        if isinstance(error, JuanNoteError):
            logger.error(
                f"[{error.code.name}] [{error_id}]: {error.message}",
                extra={"error_details": error.to_dict()},
            )
            return f"Error: {error.message}"
        elif isinstance(error, ValueError):
            logger.error(f"Validation error [{error_id}]: {str(error)}")
            return f"Error: Invalid input (ref: {error_id})"
        else:
            logger.error(f"Unexpected error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: An unexpected error occurred (ref: {error_id})"

    def _register_tools(self) -> None:
        """Register MCP tools."""

        @self.mcp.tool(name="create_note")
        def create_note(
            title: str,
            content: str,
            priority: int = 0,
            labels: Optional[str] = None,
            deadline: Optional[str] = None,
            state_id: Optional[int] = None,
        ) -> str:
            """Create a new note.
            Args:
                title: The title of the note
                content: The body of the note
                priority: Priority level (higher is more important)
                labels: Comma-separated labels (optional)
                deadline: ISO 8601 deadline (optional)
                state_id: Kanban column id (optional)
            """
            with timed_operation("mcp_create_note", title=title[:30]) as op:
                try:
                    _validate_input_lengths(title=title, content=content)
                    response = self.service.create_note(
                        CreateNoteRequest(
                            title=title,
                            content=content,
                            priority=priority,
                            labels=_parse_labels(labels),
                            deadline=_parse_deadline(deadline),
                            state_id=state_id,
                        )
                    )
                    op["note_id"] = response.data.id
                    return f"Note created successfully with ID: {response.data.id}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="get_note")
        def get_note(note_id: int) -> str:
            """Retrieve a note by ID.
            Args:
                note_id: The ID of the note
            """
            try:
                response = self.service.get_note(note_id)
                if not response.success:
                    return f"Note not found: {note_id}"
                return _format_note(response.data)
            except Exception as e:
                return self.format_error_response(e)

        @self.mcp.tool(name="list_notes")
        def list_notes(include_done: bool = True, limit: int = 50) -> str:
            """List notes in board order.
            Args:
                include_done: Include completed notes (default: True)
                limit: Maximum number of notes to list
            """
            try:
                notes = self.service.get_all_notes().data or []
                if not include_done:
                    notes = [n for n in notes if not n.done]
                notes = notes[: max(limit, 0)]
                if not notes:
                    return "No notes found."
                return f"Found {len(notes)} notes:\n" + "\n".join(
                    _format_note_line(n) for n in notes
                )
            except Exception as e:
                return self.format_error_response(e)

        @self.mcp.tool(name="update_note")
        def update_note(
            note_id: int,
            title: Optional[str] = None,
            content: Optional[str] = None,
            priority: Optional[int] = None,
            labels: Optional[str] = None,
            deadline: Optional[str] = None,
            state_id: Optional[int] = None,
        ) -> str:
            """Update fields of an existing note. Omitted fields are unchanged.
            Args:
                note_id: The ID of the note to update
                title: New title (optional)
                content: New content (optional)
                priority: New priority (optional)
                labels: Comma-separated labels replacing the current ones (optional)
                deadline: New ISO 8601 deadline (optional)
                state_id: New kanban column id (optional)
            """
            with timed_operation("mcp_update_note", note_id=note_id):
                try:
                    _validate_input_lengths(title=title, content=content)
                    fields = {
                        "title": title,
                        "content": content,
                        "priority": priority,
                        "labels": _parse_labels(labels),
                        "deadline": _parse_deadline(deadline),
                        "state_id": state_id,
                    }
                    supplied = {k: v for k, v in fields.items() if v is not None}
                    response = self.service.update_note(
                        UpdateNoteRequest(id=note_id, **supplied)
                    )
                    if not response.success:
                        return f"Note not found: {note_id}"
                    return f"Note updated successfully: {note_id}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="delete_note")
        def delete_note(note_id: int) -> str:
            """Delete a note.
            Args:
                note_id: The ID of the note to delete
            """
            try:
                response = self.service.delete_note(DeleteNoteRequest(id=note_id))
                if not response.success:
                    return f"Note not found: {note_id}"
                return f"Note deleted successfully: {note_id}"
            except Exception as e:
                return self.format_error_response(e)

        @self.mcp.tool(name="search_notes")
        def search_notes(query: str, limit: int = 10) -> str:
            """Search notes by title and content.
            Args:
                query: Words to look for; FTS operators are accepted
                limit: Maximum number of results
            """
            with timed_operation("mcp_search_notes", query=query[:30]) as op:
                try:
                    response = self.service.search_notes(
                        SearchRequest(query=query, limit=limit)
                    )
                    notes = response.data or []
                    op["result_count"] = len(notes)
                    if not notes:
                        return f"No notes found matching '{query}'."
                    return f"Found {len(notes)} notes:\n" + "\n".join(
                        _format_note_line(n) for n in notes
                    )
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="mark_done")
        def mark_done(note_id: int, done: bool = True) -> str:
            """Mark a note as done (or not done).
            Args:
                note_id: The ID of the note
                done: Completion flag (default: True)
            """
            try:
                response = self.service.update_note_done(
                    UpdateNoteDoneRequest(id=note_id, done=done)
                )
                if not response.success:
                    return f"Note not found: {note_id}"
                status = "done" if done else "not done"
                return f"Note {note_id} marked as {status}"
            except Exception as e:
                return self.format_error_response(e)

        @self.mcp.tool(name="list_states")
        def list_states() -> str:
            """List the kanban columns in board order."""
            try:
                states = self.service.get_all_states().data or []
                if not states:
                    return "No states defined."
                return "\n".join(
                    f"- {s.name} (ID: {s.id}, position {s.position}"
                    + (f", color {s.color})" if s.color else ")")
                    for s in states
                )
            except Exception as e:
                return self.format_error_response(e)

        @self.mcp.tool(name="create_state")
        def create_state(name: str, position: int = 0, color: Optional[str] = None) -> str:
            """Create a kanban column.
            Args:
                name: Column name
                position: Position on the board (0 is leftmost)
                color: Display color such as "#66D9EF" (optional)
            """
            try:
                response = self.service.create_state(
                    CreateStateRequest(name=name, position=position, color=color)
                )
                return f"State created successfully with ID: {response.data.id}"
            except Exception as e:
                return self.format_error_response(e)

        @self.mcp.tool(name="bulk_update_done")
        def bulk_update_done(note_ids: str, done: bool = True) -> str:
            """Set the done flag on several notes.
            Args:
                note_ids: Comma-separated note ids
                done: Completion flag (default: True)
            """
            try:
                response = self.service.bulk_update_notes_done(
                    BulkUpdateDoneRequest(note_ids=_parse_ids(note_ids), done=done)
                )
                return _format_bulk("Bulk done update", response)
            except Exception as e:
                return self.format_error_response(e)

        @self.mcp.tool(name="bulk_delete")
        def bulk_delete(note_ids: str) -> str:
            """Delete several notes.
            Args:
                note_ids: Comma-separated note ids
            """
            try:
                response = self.service.bulk_delete_notes(
                    BulkDeleteRequest(note_ids=_parse_ids(note_ids))
                )
                return _format_bulk("Bulk delete", response)
            except Exception as e:
                return self.format_error_response(e)

        @self.mcp.tool(name="get_metrics")
        def get_metrics(include_details: bool = False) -> str:
            """Report operation counts, timings and error rates.
            Args:
                include_details: Add a per-operation breakdown (default: False)
            """
            try:
                summary = metrics.get_summary()
                lines = [
                    "## Juan Note Health",
                    f"Uptime: {summary['uptime_seconds']:.1f} seconds",
                    f"Operations: {summary['total_operations']}",
                    f"Success rate: {summary['overall_success_rate']:.1%}",
                    f"Errors: {summary['total_errors']}",
                ]
                if include_details:
                    for name, stats in sorted(metrics.get_metrics().items()):
                        lines.append(
                            f"- {name}: {stats['count']} calls, "
                            f"{stats['error_count']} errors, "
                            f"avg {stats['avg_duration_ms']:.2f}ms"
                        )
                        if stats["last_error"]:
                            lines.append(f"  last error: {stats['last_error']}")
                return "\n".join(lines)
            except Exception as e:
                return self.format_error_response(e)

    def run(self) -> None:
        """Run the MCP server over stdio."""
        self.mcp.run()
