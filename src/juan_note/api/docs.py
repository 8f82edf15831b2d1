"""Self-describing API documentation served at ``GET /``."""
from typing import Any, Dict


def _endpoint(method: str, path: str, description: str, **extra: Any) -> Dict[str, Any]:
    entry = {"method": method, "path": path, "description": description}
    entry.update(extra)
    return entry


def api_documentation(base_url: str, version: str) -> Dict[str, Any]:
    """Describe every route, its body and the envelope it returns."""
    note_envelope = {"success": True, "data": {"id": 1, "title": "..."}, "error": None}
    list_envelope = {"success": True, "data": [], "error": None}
    bulk_envelope = {
        "success": True,
        "successful_count": 3,
        "failed_count": 0,
        "errors": None,
        "error": None,
    }
    return {
        "service": "Juan Note API",
        "version": version,
        "description": "REST API for Juan Note - note and task management",
        "base_url": base_url,
        "authentication": {"required": False},
        "endpoints": {
            "api_documentation": _endpoint("GET", "/", "This document"),
            "health": _endpoint(
                "GET", "/health", "Server, database and metrics status"
            ),
            "get_all_notes": _endpoint(
                "GET", "/notes", "All notes in board order", response=list_envelope
            ),
            "create_note": _endpoint(
                "POST", "/notes", "Create a note",
                body={
                    "title": "Required",
                    "content": "Required",
                    "priority": "Optional integer (default 0)",
                    "labels": "Optional array of strings",
                    "deadline": "Optional ISO 8601 datetime",
                    "reminder_minutes": "Optional integer (default 0)",
                    "done": "Optional boolean (default false)",
                    "state_id": "Optional state id",
                    "order": "Optional integer (default 0)",
                },
                response=note_envelope,
            ),
            "search_notes": _endpoint(
                "POST", "/notes/search", "Search title and content",
                body={
                    "query": "Search text; empty lists all notes",
                    "limit": "Optional (default 50, max 100)",
                    "offset": "Optional (default 0)",
                },
                response=list_envelope,
            ),
            "get_note": _endpoint("GET", "/notes/{id}", "One note", response=note_envelope),
            "update_note": _endpoint(
                "PUT", "/notes/{id}", "Partial update; only supplied fields change",
                response=note_envelope,
            ),
            "delete_note": _endpoint(
                "DELETE", "/notes/{id}", "Delete a note; returns the deleted note",
                response=note_envelope,
            ),
            "update_note_done": _endpoint(
                "PATCH", "/notes/{id}/done", "Set the done flag", body={"done": "boolean"},
                response=note_envelope,
            ),
            "get_all_states": _endpoint("GET", "/states", "Kanban columns by position"),
            "create_state": _endpoint(
                "POST", "/states", "Create a column",
                body={"name": "Required", "color": "Optional", "position": "Integer"},
            ),
            "update_state": _endpoint("PUT", "/states/{id}", "Partial column update"),
            "delete_state": _endpoint(
                "DELETE", "/states/{id}", "Delete a column; its notes become unassigned"
            ),
            "bulk_delete": _endpoint(
                "POST", "/bulk/notes/delete", "Delete many notes",
                body={"note_ids": [1, 2, 3]}, response=bulk_envelope,
            ),
            "bulk_priority": _endpoint(
                "PATCH", "/bulk/notes/priority", "Set priority on many notes",
                body={"note_ids": [1, 2], "priority": 3}, response=bulk_envelope,
            ),
            "bulk_done": _endpoint(
                "PATCH", "/bulk/notes/done", "Set done on many notes",
                body={"note_ids": [1, 2], "done": True}, response=bulk_envelope,
            ),
            "bulk_state": _endpoint(
                "PATCH", "/bulk/notes/state", "Move many notes to a column",
                body={"note_ids": [1, 2], "state_id": 2}, response=bulk_envelope,
            ),
            "bulk_order": _endpoint(
                "PATCH", "/bulk/notes/order", "Set positional order",
                body={"note_ids": [5, 6, 7], "orders": [2, 0, 1]}, response=bulk_envelope,
            ),
        },
    }
