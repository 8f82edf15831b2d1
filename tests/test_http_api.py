"""Tests for the REST facade."""
import logging
import socket

import pytest
from fastapi.testclient import TestClient

from juan_note import __version__
from juan_note.api import create_app, find_available_port
from juan_note.config import JuanNoteConfig
from juan_note.exceptions import ConfigurationError, ErrorCode


@pytest.fixture
def client(note_service):
    return TestClient(create_app(note_service))


def _create(client, **fields):
    body = {"title": "Note", "content": "Body"}
    body.update(fields)
    response = client.post("/notes", json=body)
    assert response.status_code == 200
    return response.json()["data"]


class TestNoteRoutes:
    """Tests for /notes."""

    def test_create_and_get(self, client):
        created = _create(client, title="Buy milk", content="2%", labels=["home"])
        assert created["labels"] == ["home"]
        assert created["done"] is False

        response = client.get(f"/notes/{created['id']}")
        assert response.status_code == 200
        body = response.json()
        assert body == {"success": True, "data": created, "error": None}

    def test_timestamps_are_iso_strings(self, client):
        created = _create(client)
        assert "T" in created["created_at"]
        assert created["deadline"] is None

    def test_list(self, client):
        _create(client, title="b", order=1)
        _create(client, title="a", order=0)
        body = client.get("/notes").json()
        assert body["success"] is True
        assert [n["title"] for n in body["data"]] == ["a", "b"]

    def test_missing_note_is_envelope(self, client):
        response = client.get("/notes/999")
        assert response.status_code == 200
        assert response.json() == {"success": False, "data": None, "error": "Note not found"}

    def test_partial_update(self, client):
        created = _create(client, title="Old", content="Keep")
        response = client.put(f"/notes/{created['id']}", json={"title": "New"})
        data = response.json()["data"]
        assert data["title"] == "New"
        assert data["content"] == "Keep"

    def test_update_uses_path_id(self, client):
        first = _create(client, title="first")
        second = _create(client, title="second")
        client.put(f"/notes/{first['id']}", json={"id": second["id"], "title": "changed"})
        assert client.get(f"/notes/{second['id']}").json()["data"]["title"] == "second"
        assert client.get(f"/notes/{first['id']}").json()["data"]["title"] == "changed"

    def test_update_clears_deadline(self, client):
        created = _create(client, deadline="2025-01-01T00:00:00Z")
        assert created["deadline"] is not None
        data = client.put(f"/notes/{created['id']}", json={"deadline": None}).json()["data"]
        assert data["deadline"] is None

    def test_empty_update_is_bad_request(self, client):
        created = _create(client)
        response = client.put(f"/notes/{created['id']}", json={})
        assert response.status_code == 400
        assert response.json() == {"success": False, "data": None, "error": "No fields to update"}

    def test_delete(self, client):
        created = _create(client, title="Gone")
        response = client.delete(f"/notes/{created['id']}")
        assert response.json()["data"]["title"] == "Gone"
        assert client.get(f"/notes/{created['id']}").json()["success"] is False

    def test_done(self, client):
        created = _create(client)
        data = client.patch(f"/notes/{created['id']}/done", json={"done": True}).json()["data"]
        assert data["done"] is True

    @pytest.mark.parametrize("body", [{"done": "yes"}, {"done": 1}, {}])
    def test_done_non_boolean_means_false(self, client, body):
        created = _create(client, done=True)
        data = client.patch(f"/notes/{created['id']}/done", json=body).json()["data"]
        assert data["done"] is False

    def test_done_without_body(self, client):
        created = _create(client, done=True)
        response = client.patch(f"/notes/{created['id']}/done")
        assert response.json()["data"]["done"] is False

    def test_search(self, client):
        _create(client, title="Buy milk")
        _create(client, title="Call mom")
        body = client.post("/notes/search", json={"query": "milk"}).json()
        assert [n["title"] for n in body["data"]] == ["Buy milk"]

    def test_search_empty_query_lists_all(self, client):
        _create(client)
        _create(client)
        assert len(client.post("/notes/search", json={}).json()["data"]) == 2

    def test_search_bad_limit(self, client):
        response = client.post("/notes/search", json={"query": "milk", "limit": 0})
        assert response.status_code == 400
        assert response.json()["success"] is False


class TestRequestValidation:
    """Tests for malformed request bodies."""

    def test_missing_title(self, client):
        response = client.post("/notes", json={"content": "no title"})
        assert response.status_code == 422
        body = response.json()
        assert body["success"] is False
        assert body["data"] is None
        assert body["error"].startswith("Invalid request: ")
        assert "title" in body["error"]

    def test_labels_must_be_strings(self, client):
        response = client.post("/notes", json={"title": "t", "content": "c", "labels": [{"a": 1}]})
        assert response.status_code == 422

    def test_non_numeric_id(self, client):
        response = client.get("/notes/abc")
        assert response.status_code == 422
        assert response.json()["success"] is False

    def test_bulk_validation_uses_bulk_shape(self, client):
        response = client.post("/bulk/notes/delete", json={"note_ids": "nope"})
        assert response.status_code == 422
        body = response.json()
        assert body["success"] is False
        assert body["successful_count"] == 0
        assert body["failed_count"] == 0
        assert body["errors"] == [body["error"]]


class TestServerErrors:
    """Tests for failures inside the service."""

    def test_storage_error_hides_details(self, client):
        response = client.post("/notes", json={"title": "t", "content": "c", "state_id": 999})
        assert response.status_code == 500
        error = response.json()["error"]
        assert error.startswith("Internal server error (ref: ")
        assert "FOREIGN KEY" not in error

    def test_storage_error_logged_with_details(self, client, caplog):
        caplog.set_level(logging.ERROR, logger="juan_note.api.app")
        response = client.post("/notes", json={"title": "t", "content": "c", "state_id": 999})
        reference = response.json()["error"].split("ref: ")[1].rstrip(")")
        record = next(r for r in caplog.records if reference in r.getMessage())
        assert record.error_details["error"] == "StorageError"
        assert record.error_details["code_name"].startswith("STORAGE_")

    def test_unexpected_error(self, note_service, monkeypatch):
        def boom():
            raise RuntimeError("database exploded")

        monkeypatch.setattr(note_service, "get_all_notes", boom)
        client = TestClient(create_app(note_service), raise_server_exceptions=False)
        response = client.get("/notes")
        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert "exploded" not in body["error"]


class TestStateRoutes:
    """Tests for /states."""

    def test_list_seeded(self, client):
        names = [s["name"] for s in client.get("/states").json()["data"]]
        assert names == ["To Do", "In Progress", "Done"]

    def test_lifecycle(self, client):
        created = client.post("/states", json={"name": "Review", "color": "#fff", "position": 3})
        state = created.json()["data"]
        assert state["name"] == "Review"

        updated = client.put(f"/states/{state['id']}", json={"name": "QA"}).json()["data"]
        assert updated["name"] == "QA"
        assert updated["color"] == "#fff"

        deleted = client.delete(f"/states/{state['id']}").json()
        assert deleted["success"] is True
        assert client.delete(f"/states/{state['id']}").json()["error"] == "State not found"

    def test_blank_name_rejected(self, client):
        assert client.post("/states", json={"name": "  "}).status_code == 422

    def test_delete_detaches_notes(self, client):
        state = client.post("/states", json={"name": "Temp"}).json()["data"]
        note = _create(client, state_id=state["id"])
        client.delete(f"/states/{state['id']}")
        assert client.get(f"/notes/{note['id']}").json()["data"]["state_id"] is None


class TestBulkRoutes:
    """Tests for /bulk/notes."""

    def test_delete_partial(self, client):
        note = _create(client)
        body = client.post("/bulk/notes/delete", json={"note_ids": [note["id"], 999]}).json()
        assert body == {
            "success": True,
            "successful_count": 1,
            "failed_count": 1,
            "errors": ["Note 999 not found"],
            "error": None,
        }

    def test_priority(self, client):
        note = _create(client)
        body = client.patch("/bulk/notes/priority", json={"note_ids": [note["id"]], "priority": 5}).json()
        assert body["successful_count"] == 1
        assert body["errors"] is None
        assert client.get(f"/notes/{note['id']}").json()["data"]["priority"] == 5

    def test_done(self, client):
        notes = [_create(client) for _ in range(2)]
        body = client.patch(
            "/bulk/notes/done", json={"note_ids": [n["id"] for n in notes], "done": True}
        ).json()
        assert body["successful_count"] == 2

    def test_state_with_unknown_column(self, client):
        note = _create(client)
        body = client.patch("/bulk/notes/state", json={"note_ids": [note["id"]], "state_id": 999}).json()
        assert body["success"] is True
        assert body["failed_count"] == 1
        assert body["errors"][0].startswith(f"Failed to update note {note['id']}")

    def test_order(self, client):
        ids = [_create(client, title=t)["id"] for t in ("a", "b", "c")]
        body = client.patch("/bulk/notes/order", json={"note_ids": ids, "orders": [2, 0, 1]}).json()
        assert body["successful_count"] == 3
        titles = [n["title"] for n in client.get("/notes").json()["data"]]
        assert titles == ["b", "c", "a"]


class TestServiceRoutes:
    """Tests for / and /health."""

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["service"] == "juan-note-api"
        assert body["version"] == __version__
        assert body["database"] == "ok"
        assert "total_operations" in body["metrics"]

    def test_health_degraded(self, note_service, monkeypatch):
        monkeypatch.setattr(note_service.database, "ping", lambda: False)
        body = TestClient(create_app(note_service)).get("/health").json()
        assert body["status"] == "degraded"
        assert body["database"] == "unavailable"

    def test_documentation(self, client):
        body = client.get("/").json()
        assert body["version"] == __version__
        assert body["endpoints"]["bulk_order"]["path"] == "/bulk/notes/order"
        assert body["authentication"] == {"required": False}

    def test_cors_allows_configured_origin(self, note_service):
        app_config = JuanNoteConfig(cors_origins=["http://localhost:1420"])
        client = TestClient(create_app(note_service, app_config))
        response = client.options(
            "/notes",
            headers={
                "Origin": "http://localhost:1420",
                "Access-Control-Request-Method": "GET",
            },
        )
        assert response.headers["access-control-allow-origin"] == "http://localhost:1420"

    def test_cors_rejects_other_origin(self, note_service):
        app_config = JuanNoteConfig(cors_origins=["http://localhost:1420"])
        client = TestClient(create_app(note_service, app_config))
        response = client.get("/notes", headers={"Origin": "http://evil.example"})
        assert "access-control-allow-origin" not in response.headers


class TestPortSelection:
    """Tests for probing a free port."""

    def test_taken_port_skipped(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as held:
            held.bind(("127.0.0.1", 0))
            held.listen()
            taken = held.getsockname()[1]
            with pytest.raises(ConfigurationError) as excinfo:
                find_available_port("127.0.0.1", taken, taken)
            assert excinfo.value.code == ErrorCode.NO_AVAILABLE_PORT

    def test_free_port_returned(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as probe:
            probe.bind(("127.0.0.1", 0))
            free = probe.getsockname()[1]
        assert find_available_port("127.0.0.1", free, free) == free
