"""
Tests for the in-memory session store
"""

from pathlib import Path

import pytest

from filebot.file_types import FileType
from filebot.models import FileRef
from filebot.session_store import SessionStore, Step


def ref(name: str = "a.pdf") -> FileRef:
    return FileRef(handle=Path("/tmp") / name, detected_type=FileType.PDF, original_name=name)


class TestSessionLifecycle:
    """Creation, updates and destruction"""

    def test_fresh_session_defaults(self, clock):
        store = SessionStore(clock=clock)
        session = store.get_or_create("alice")

        assert session.current_step == Step.IDLE
        assert session.uploaded_files == []
        assert session.metadata == {}
        assert session.selected_operation is None
        assert session.last_activity == clock.now

    def test_get_or_create_returns_same_record(self, clock):
        store = SessionStore(clock=clock)
        assert store.get_or_create("alice") is store.get_or_create("alice")

    def test_access_refreshes_activity(self, clock):
        store = SessionStore(clock=clock)
        store.get_or_create("alice")
        clock.advance(60)
        assert store.get_or_create("alice").last_activity == clock.now

    def test_peek_does_not_refresh(self, clock):
        store = SessionStore(clock=clock)
        store.get_or_create("alice")
        created = clock.now
        clock.advance(60)

        assert store.peek("alice").last_activity == created
        assert store.peek("bob") is None

    def test_update_sets_fields(self, clock):
        store = SessionStore(clock=clock)
        store.update("alice", current_step=Step.AWAITING_FILE, selected_operation="merge_pdf")

        session = store.peek("alice")
        assert session.current_step == Step.AWAITING_FILE
        assert session.selected_operation == "merge_pdf"
        assert session.step_label == "awaiting_file"

    def test_update_unknown_field_raises(self):
        store = SessionStore()
        with pytest.raises(AttributeError):
            store.update("alice", colour="blue")

    def test_step_label_names_pending_key(self):
        store = SessionStore()
        session = store.update("alice", current_step=Step.AWAITING_METADATA, awaiting_key="page_range")
        assert session.step_label == "awaiting_metadata(page_range)"

    def test_clear_destroys_record_and_calls_hook(self):
        discarded = []
        store = SessionStore(on_discard=discarded.append)
        store.add_file("alice", ref())

        store.clear("alice")

        assert store.peek("alice") is None
        assert [s.user_id for s in discarded] == ["alice"]


class TestFiles:
    """Uploaded file list"""

    def test_add_and_list_in_order(self):
        store = SessionStore()
        assert store.add_file("alice", ref("1.pdf")) == 1
        assert store.add_file("alice", ref("2.pdf")) == 2

        names = [f.original_name for f in store.list_files("alice")]
        assert names == ["1.pdf", "2.pdf"]

    def test_list_files_returns_copy(self):
        store = SessionStore()
        store.add_file("alice", ref())
        store.list_files("alice").clear()
        assert len(store.list_files("alice")) == 1

    def test_clear_files_keeps_other_state(self):
        store = SessionStore()
        store.update("alice", current_step=Step.AWAITING_FILE, selected_operation="merge_pdf")
        store.add_file("alice", ref())

        removed = store.clear_files("alice")

        assert len(removed) == 1
        session = store.peek("alice")
        assert session.uploaded_files == []
        assert session.selected_operation == "merge_pdf"

    def test_users_are_isolated(self):
        store = SessionStore()
        store.add_file("alice", ref())
        store.update("alice", current_step=Step.AWAITING_FILE)

        bob = store.get_or_create("bob")
        assert bob.uploaded_files == []
        assert bob.current_step == Step.IDLE


class TestExpiry:
    """Idle timeout and sweeping"""

    def test_expired_session_replaced_on_access(self, clock):
        discarded = []
        store = SessionStore(timeout_minutes=30, clock=clock, on_discard=discarded.append)
        store.update("alice", current_step=Step.AWAITING_FILE, metadata={"page_range": "1"})
        store.add_file("alice", ref())

        clock.advance(31 * 60)
        session = store.get_or_create("alice")

        assert session.current_step == Step.IDLE
        assert session.uploaded_files == []
        assert session.metadata == {}
        assert len(discarded) == 1

    def test_sweep_drops_only_idle_sessions(self, clock):
        store = SessionStore(timeout_minutes=30, clock=clock)
        store.get_or_create("alice")
        store.get_or_create("bob")

        clock.advance(20 * 60)
        store.get_or_create("bob")
        clock.advance(15 * 60)

        assert store.sweep_expired() == 1
        assert store.peek("alice") is None
        assert store.peek("bob") is not None

    def test_sweep_skips_processing_sessions(self, clock):
        store = SessionStore(timeout_minutes=30, clock=clock)
        store.update("alice", current_step=Step.PROCESSING)

        clock.advance(60 * 60)

        assert store.sweep_expired() == 0
        assert store.peek("alice") is not None

    def test_sweep_accepts_explicit_now(self, clock):
        store = SessionStore(timeout_minutes=30, clock=clock)
        store.get_or_create("alice")
        assert store.sweep_expired(now=clock.now + 31 * 60) == 1

    def test_discard_hook_errors_are_contained(self, clock):
        def broken_hook(session):
            raise RuntimeError("boom")

        store = SessionStore(timeout_minutes=30, clock=clock, on_discard=broken_hook)
        store.get_or_create("alice")
        clock.advance(31 * 60)

        assert store.sweep_expired() == 1


class TestStats:

    def test_counts_by_step(self):
        store = SessionStore()
        store.get_or_create("alice")
        store.update("bob", current_step=Step.AWAITING_FILE)

        stats = store.stats()
        assert stats["total"] == 2
        assert stats["idle"] == 1
        assert stats["awaiting_file"] == 1
        assert len(store) == 2
