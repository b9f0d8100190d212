"""In-memory, session-scoped chapter storage."""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from uuid import uuid4

from vision_thread.domain.chapters import Chapter, ChapterDraft

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class _SessionEntry:
    touched_at: datetime
    chapters: list[Chapter] = field(default_factory=list)


class SessionStore:
    """Holds an ordered chapter list and a last-touched time per session.

    Every operation runs entirely under one lock and never awaits, so chapter
    numbers stay unique and contiguous whether callers are coroutines on one
    event loop or worker threads.

    Reading a session that does not exist yet creates an empty record for it.
    """

    def __init__(self, clock: Callable[[], datetime] = _utc_now) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: dict[str, _SessionEntry] = {}

    @property
    def session_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def append(self, session_id: str, draft: ChapterDraft) -> Chapter:
        """Store a new chapter numbered after the session's existing ones."""
        with self._lock:
            entry = self._touch(session_id)
            chapter = Chapter(
                id=uuid4(),
                image_reference=draft.image_reference,
                narrative=draft.narrative,
                connections=tuple(draft.connections),
                tags=tuple(draft.tags),
                chapter_number=len(entry.chapters) + 1,
                created_at=self._clock(),
            )
            entry.chapters.append(chapter)
            return chapter

    def list(self, session_id: str) -> list[Chapter]:
        """Return the session's chapters ordered by chapter number."""
        with self._lock:
            entry = self._touch(session_id)
            return sorted(entry.chapters, key=lambda chapter: chapter.chapter_number)

    def clear(self, session_id: str) -> None:
        """Remove every chapter while keeping the session record."""
        with self._lock:
            self._touch(session_id).chapters.clear()

    def sweep_expired(self, now: datetime, timeout: timedelta) -> int:
        """Drop sessions idle for longer than ``timeout`` and return the count."""
        with self._lock:
            expired = [
                session_id
                for session_id, entry in self._sessions.items()
                if now - entry.touched_at > timeout
            ]
            for session_id in expired:
                del self._sessions[session_id]
                logger.info("Cleaned up expired session: %s", session_id)
        if expired:
            logger.info("Cleaned up %d expired sessions", len(expired))
        return len(expired)

    def _touch(self, session_id: str) -> _SessionEntry:
        now = self._clock()
        entry = self._sessions.get(session_id)
        if entry is None:
            entry = _SessionEntry(touched_at=now)
            self._sessions[session_id] = entry
        else:
            entry.touched_at = now
        return entry
