"""Tests for best-effort bulk note operations."""
import datetime
from datetime import timezone

from juan_note.storage import note_repository as note_repository_module


class TestBulkDelete:
    """Tests for deleting many notes."""

    def test_all_present(self, bulk_operations, note_repository, make_note):
        ids = [make_note(title=f"n{i}").id for i in range(3)]
        result = bulk_operations.delete(ids)
        assert result.successful_count == 3
        assert result.failed_count == 0
        assert result.errors == []
        assert note_repository.get_all() == []

    def test_partial_failure(self, bulk_operations, note_repository, make_note):
        first = make_note(title="first")
        second = make_note(title="second")
        result = bulk_operations.delete([first.id, 9999, second.id])
        assert result.successful_count == 2
        assert result.failed_count == 1
        assert result.errors == ["Note 9999 not found"]
        assert note_repository.get_all() == []

    def test_empty_list(self, bulk_operations):
        result = bulk_operations.delete([])
        assert (result.successful_count, result.failed_count, result.errors) == (0, 0, [])

    def test_duplicate_id_fails_second_time(self, bulk_operations, make_note):
        note = make_note()
        result = bulk_operations.delete([note.id, note.id])
        assert result.successful_count == 1
        assert result.errors == [f"Note {note.id} not found"]


class TestBulkUpdates:
    """Tests for setting one field on many notes."""

    def test_priority(self, bulk_operations, note_repository, make_note):
        notes = [make_note(title=f"n{i}") for i in range(3)]
        result = bulk_operations.set_priority([n.id for n in notes], 4)
        assert result.successful_count == 3
        assert {note_repository.get(n.id).priority for n in notes} == {4}

    def test_done_with_missing_ids(self, bulk_operations, note_repository, make_note):
        note = make_note()
        result = bulk_operations.set_done([note.id, 404, 405], True)
        assert result.successful_count == 1
        assert result.failed_count == 2
        assert result.errors == ["Note 404 not found", "Note 405 not found"]
        assert note_repository.get(note.id).done is True

    def test_state(self, bulk_operations, note_repository, state_repository, make_note):
        done = next(s for s in state_repository.get_all() if s.name == "Done")
        notes = [make_note(title=f"n{i}") for i in range(2)]
        result = bulk_operations.set_state([n.id for n in notes], done.id)
        assert result.successful_count == 2
        assert all(note_repository.get(n.id).state_id == done.id for n in notes)

    def test_state_can_be_cleared(self, bulk_operations, note_repository, state_repository, make_note):
        state = state_repository.get_all()[0]
        note = make_note(state_id=state.id)
        result = bulk_operations.set_state([note.id], None)
        assert result.successful_count == 1
        assert note_repository.get(note.id).state_id is None

    def test_unknown_state_fails_each_item(self, bulk_operations, note_repository, make_note):
        notes = [make_note(title=f"n{i}") for i in range(2)]
        result = bulk_operations.set_state([n.id for n in notes], 777)
        assert result.successful_count == 0
        assert result.failed_count == 2
        for note, error in zip(notes, result.errors):
            assert error.startswith(f"Failed to update note {note.id}: ")
            assert "FOREIGN KEY" in error
        assert all(note_repository.get(n.id).state_id is None for n in notes)

    def test_failure_leaves_siblings_applied(self, bulk_operations, note_repository, make_note):
        note = make_note()
        bulk_operations.set_priority([note.id], 2)
        result = bulk_operations.set_state([note.id], 777)
        assert result.failed_count == 1
        assert note_repository.get(note.id).priority == 2


class TestBulkOrder:
    """Tests for positional order assignment."""

    def test_orders_applied_by_position(self, bulk_operations, note_repository, make_note):
        a, b, c = (make_note(title=t) for t in ("a", "b", "c"))
        result = bulk_operations.set_order([a.id, b.id, c.id], [2, 0, 1])
        assert result.successful_count == 3
        assert [n.title for n in note_repository.get_all()] == ["b", "c", "a"]

    def test_missing_entries_default_to_zero(self, bulk_operations, note_repository, make_note):
        a, b = make_note(title="a", order=5), make_note(title="b", order=6)
        result = bulk_operations.set_order([a.id, b.id], [3])
        assert result.successful_count == 2
        assert note_repository.get(a.id).order == 3
        assert note_repository.get(b.id).order == 0

    def test_surplus_entries_ignored(self, bulk_operations, note_repository, make_note):
        note = make_note()
        result = bulk_operations.set_order([note.id], [4, 9, 9])
        assert result.successful_count == 1
        assert note_repository.get(note.id).order == 4

    def test_updated_at_refreshed(self, monkeypatch, bulk_operations, note_repository, make_note):
        start = datetime.datetime(2024, 1, 1, tzinfo=timezone.utc)
        monkeypatch.setattr(note_repository_module, "utc_now", lambda: start)
        note = make_note()
        bulk_operations.set_order([note.id], [1])
        assert note_repository.get(note.id).updated_at > start
