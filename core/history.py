"""
Bounded, persisted research history.

The whole history is one JSON array (newest first) stored under a single
key. Every mutation re-serialises the full array. Writes are best-effort:
a failed write is logged and the in-memory list stays authoritative for
the life of the process.

Backends
────────
MemoryBackend  — dict-backed, for tests and ephemeral use
SQLiteBackend  — table ``kv(key TEXT PRIMARY KEY, value TEXT NOT NULL)``
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Protocol

from pydantic import ValidationError

from core.errors import SessionNotFound
from core.models import Session

logger = logging.getLogger(__name__)

HISTORY_KEY = "deep_research_history"
DEFAULT_CAPACITY = 15
DEFAULT_DB_PATH = Path(__file__).parent.parent / "data" / "history.db"

#: Session fields later stages may replace; everything else is fixed at creation.
ARTIFACT_FIELDS = frozenset({"timeline_image", "literature_review"})


# ── Storage backends ───────────────────────────────────────────────────────

class StorageBackend(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryBackend:
    """In-process key-value storage."""

    def __init__(self, data: Optional[dict[str, str]] = None) -> None:
        self.data: dict[str, str] = dict(data or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


class SQLiteBackend:
    """Key-value storage in a single SQLite table."""

    def __init__(self, path: Path | str = DEFAULT_DB_PATH) -> None:
        self.path = Path(path)
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key   TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )
        logger.info("History DB initialised at %s", self.path)

    @contextmanager
    def _connect(self):
        """Yield a connected sqlite3.Connection, creating the file/dir if needed."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.path))
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def get(self, key: str) -> Optional[str]:
        with self._connect() as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO kv (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )

    def delete(self, key: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM kv WHERE key = ?", (key,))


# ── History store ──────────────────────────────────────────────────────────

class HistoryStore:
    """Newest-first list of sessions capped at *capacity* entries.

    Mutating methods return the new list. Inserting past the cap silently
    evicts the oldest sessions.
    """

    def __init__(
        self,
        backend: StorageBackend,
        key: str = HISTORY_KEY,
        capacity: int = DEFAULT_CAPACITY,
    ) -> None:
        if capacity < 1:
            raise ValueError("History capacity must be at least 1.")
        self.backend = backend
        self.key = key
        self.capacity = capacity
        self._lock = threading.RLock()
        self._sessions: list[Session] = self._load()

    # ── Persistence ────────────────────────────────────────────────────────

    def _load(self) -> list[Session]:
        try:
            blob = self.backend.get(self.key)
        except Exception as exc:
            logger.warning("Could not read history: %s", exc)
            return []
        if not blob:
            return []

        try:
            raw = json.loads(blob)
        except json.JSONDecodeError as exc:
            logger.warning("Discarding unreadable history blob: %s", exc)
            return []
        if not isinstance(raw, list):
            logger.warning("Discarding history blob of type %s", type(raw).__name__)
            return []

        sessions: list[Session] = []
        for entry in raw:
            try:
                sessions.append(Session.model_validate(entry))
            except ValidationError as exc:
                entry_id = entry.get("id") if isinstance(entry, dict) else None
                logger.warning("Skipping corrupt history entry id=%r: %s", entry_id, exc)
        return sessions[:self.capacity]

    def _persist(self) -> None:
        blob = json.dumps(
            [s.model_dump(mode="json", by_alias=True) for s in self._sessions]
        )
        try:
            self.backend.set(self.key, blob)
        except Exception as exc:
            logger.warning(
                "Could not persist history (%d entries), keeping in-memory state: %s",
                len(self._sessions), exc,
            )

    # ── Queries ────────────────────────────────────────────────────────────

    @property
    def sessions(self) -> list[Session]:
        """Snapshot of all sessions, newest first."""
        with self._lock:
            return list(self._sessions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return self.get(session_id) is not None  # type: ignore[arg-type]

    def get(self, session_id: str) -> Optional[Session]:
        """Return the session with *session_id*, or None."""
        with self._lock:
            return next((s for s in self._sessions if s.id == session_id), None)

    # ── Mutations ──────────────────────────────────────────────────────────

    def add(self, session: Session) -> list[Session]:
        """Prepend *session*, evicting the oldest entries past capacity."""
        with self._lock:
            evicted = self._sessions[self.capacity - 1:]
            self._sessions = [session, *self._sessions][:self.capacity]
            if evicted:
                logger.info("Evicted %d old history entries", len(evicted))
            self._persist()
            logger.info("Saved history entry id=%s for topic=%r", session.id, session.topic)
            return list(self._sessions)

    def update(self, session_id: str, **changes: object) -> list[Session]:
        """Replace artifact fields of one session in place.

        Only ``timeline_image`` and ``literature_review`` may change; the
        id, topic, result and config are fixed at creation.

        Raises:
            SessionNotFound: If no session has *session_id*.
            ValueError: If *changes* names any other field.
        """
        illegal = set(changes) - ARTIFACT_FIELDS
        if illegal:
            raise ValueError(f"Cannot update session fields: {sorted(illegal)}")

        with self._lock:
            for index, session in enumerate(self._sessions):
                if session.id == session_id:
                    break
            else:
                raise SessionNotFound(session_id)

            updated = self._sessions[:]
            updated[index] = session.model_copy(update=changes)
            self._sessions = updated
            self._persist()
            logger.info("Updated history entry id=%s fields=%s", session_id, sorted(changes))
            return list(self._sessions)

    def delete(self, session_id: str) -> list[Session]:
        """Remove one session; the remaining order is unchanged."""
        with self._lock:
            remaining = [s for s in self._sessions if s.id != session_id]
            if len(remaining) != len(self._sessions):
                self._sessions = remaining
                self._persist()
                logger.info("Deleted history entry id=%s", session_id)
            return list(self._sessions)

    def clear(self) -> list[Session]:
        """Remove every session and the persisted blob."""
        with self._lock:
            self._sessions = []
            try:
                self.backend.delete(self.key)
            except Exception as exc:
                logger.warning("Could not clear persisted history: %s", exc)
            logger.info("Cleared history")
            return []
