"""
Session Store - one conversation record per chat user.

- Created lazily on the first message from a user
- Refreshed on every read or write
- Dropped after 30 minutes without activity (periodic sweep)
- Thread-safe: the HTTP adapter serves users on worker threads

Nothing is persisted. A session that expires mid-workflow is simply gone and
the user starts over from the menu.
"""

import time
import logging
from dataclasses import dataclass, field, fields
from enum import Enum
from threading import Lock
from typing import Callable, Optional

from filebot.models import FileRef


logger = logging.getLogger(__name__)


class Step(str, Enum):
    """Conversation states"""
    IDLE = "idle"                            # No operation selected
    AWAITING_FILE = "awaiting_file"          # Operation selected, collecting files
    AWAITING_METADATA = "awaiting_metadata"  # Waiting for the answer to `awaiting_key`
    PROCESSING = "processing"                # Conversion running


@dataclass
class Session:
    """Stores all conversational state for one user"""
    user_id: str
    uploaded_files: list[FileRef] = field(default_factory=list)
    current_step: Step = Step.IDLE
    awaiting_key: Optional[str] = None
    selected_operation: Optional[str] = None
    metadata: dict[str, str] = field(default_factory=dict)
    last_activity: float = field(default_factory=time.time)

    # Operation whose last run failed; its answers are reused on re-selection
    last_operation: Optional[str] = None

    @property
    def step_label(self) -> str:
        if self.current_step == Step.AWAITING_METADATA:
            return f"awaiting_metadata({self.awaiting_key})"
        return self.current_step.value


_UPDATABLE_FIELDS = {f.name for f in fields(Session)} - {"user_id", "last_activity"}


class SessionStore:
    """
    Thread-safe in-memory session table.

    The store is created by the application and handed to whoever needs it,
    so tests build their own and nothing leaks between them.
    """

    def __init__(
        self,
        timeout_minutes: int = 30,
        clock: Callable[[], float] = time.time,
        on_discard: Optional[Callable[[Session], None]] = None,
    ):
        self._sessions: dict[str, Session] = {}
        self._lock = Lock()
        self._timeout_seconds = timeout_minutes * 60
        self._clock = clock
        self._on_discard = on_discard

    def _is_expired(self, session: Session, now: float) -> bool:
        return now - session.last_activity > self._timeout_seconds

    def _discard(self, sessions: list[Session]) -> None:
        if not self._on_discard:
            return
        for session in sessions:
            try:
                self._on_discard(session)
            except Exception as e:
                logger.warning(f"[SESSION] Discard hook failed for {session.user_id}: {e}")

    def get_or_create(self, user_id: str) -> Session:
        """Get the user's session, creating a fresh one if absent or expired"""
        now = self._clock()
        expired = None
        with self._lock:
            session = self._sessions.get(user_id)
            if session is not None and self._is_expired(session, now):
                expired = session
                session = None
            if session is None:
                session = Session(user_id=user_id, last_activity=now)
                self._sessions[user_id] = session
            session.last_activity = now

        if expired is not None:
            logger.info(f"[SESSION] {user_id} expired, starting fresh")
            self._discard([expired])
        return session

    def peek(self, user_id: str) -> Optional[Session]:
        """Get a session without refreshing its activity timestamp"""
        with self._lock:
            return self._sessions.get(user_id)

    def update(self, user_id: str, **updates) -> Session:
        """Apply field updates to a session"""
        unknown = set(updates) - _UPDATABLE_FIELDS
        if unknown:
            raise AttributeError(f"Unknown session field(s): {', '.join(sorted(unknown))}")

        session = self.get_or_create(user_id)
        with self._lock:
            for name, value in updates.items():
                setattr(session, name, value)
            session.last_activity = self._clock()
        return session

    def clear(self, user_id: str) -> None:
        """Destroy a session entirely"""
        with self._lock:
            session = self._sessions.pop(user_id, None)
        if session is not None:
            self._discard([session])

    def add_file(self, user_id: str, file_ref: FileRef) -> int:
        """Append an uploaded file. Returns the new file count."""
        session = self.get_or_create(user_id)
        with self._lock:
            session.uploaded_files.append(file_ref)
            return len(session.uploaded_files)

    def list_files(self, user_id: str) -> list[FileRef]:
        session = self.get_or_create(user_id)
        with self._lock:
            return list(session.uploaded_files)

    def clear_files(self, user_id: str) -> list[FileRef]:
        """Empty the uploaded file list. Returns the removed files for cleanup."""
        session = self.get_or_create(user_id)
        with self._lock:
            removed = session.uploaded_files
            session.uploaded_files = []
        return removed

    def sweep_expired(self, now: Optional[float] = None) -> int:
        """
        Drop every session idle for longer than the timeout.

        Sessions in the processing step are skipped: their conversion is still
        running and owns the session's input files.
        """
        current_time = now if now is not None else self._clock()
        with self._lock:
            stale_ids = [
                uid for uid, session in self._sessions.items()
                if self._is_expired(session, current_time) and session.current_step != Step.PROCESSING
            ]
            evicted = [self._sessions.pop(uid) for uid in stale_ids]

        self._discard(evicted)
        if evicted:
            logger.info(f"[SESSION CLEANUP] Dropped {len(evicted)} idle session(s)")
        return len(evicted)

    def stats(self) -> dict[str, int]:
        """Session counts by step"""
        with self._lock:
            by_step: dict[str, int] = {"total": len(self._sessions)}
            for session in self._sessions.values():
                by_step[session.current_step.value] = by_step.get(session.current_step.value, 0) + 1
            return by_step

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
