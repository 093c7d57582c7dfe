from __future__ import annotations

import base64
import logging
import os
import secrets
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from .exceptions import SessionError

logger = logging.getLogger(__name__)

SESSION_KEY_BYTES = 32
_KEY_FILE = "session_encryption_key"
_ID_FILE = "session_id"


def generate_session_key() -> str:
    return base64.urlsafe_b64encode(secrets.token_bytes(SESSION_KEY_BYTES)).decode("ascii")


def generate_session_id() -> str:
    raw = f"{int(time.time() * 1000)}-{secrets.randbelow(1_000_000)}"
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")


@dataclass(frozen=True, slots=True)
class SessionContext:
    session_id: str
    key: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, str]:
        # The key itself never leaves the process.
        return {"session_id": self.session_id, "created_at": self.created_at.isoformat()}


class SessionKeyStore:
    """Keeps the session key in owner-only files, or in memory when that fails."""

    def __init__(self, directory: Path) -> None:
        self._directory = directory
        self._memory: dict[str, str] = {}
        self._lock = threading.Lock()

    @property
    def persistent(self) -> bool:
        return not self._memory

    def write(self, name: str, value: str) -> None:
        with self._lock:
            try:
                self._directory.mkdir(parents=True, exist_ok=True)
                path = self._directory / name
                fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(value)
                self._memory.pop(name, None)
            except OSError as exc:
                logger.warning("Secure key storage unavailable, keeping %s in memory: %s", name, exc)
                self._memory[name] = value

    def read(self, name: str) -> str | None:
        with self._lock:
            if name in self._memory:
                return self._memory[name]
            path = self._directory / name
            try:
                value = path.read_text(encoding="utf-8").strip()
            except FileNotFoundError:
                return None
            except OSError as exc:
                logger.warning("Failed to read %s from key storage: %s", name, exc)
                return None
            return value or None

    def delete(self, name: str) -> None:
        with self._lock:
            self._memory.pop(name, None)
            try:
                (self._directory / name).unlink()
            except FileNotFoundError:
                pass
            except OSError as exc:
                logger.warning("Failed to delete %s from key storage: %s", name, exc)


class SessionManager:
    """Owns the lifetime of the active :class:`SessionContext`."""

    def __init__(self, store: SessionKeyStore) -> None:
        self._store = store
        self._lock = threading.Lock()
        self._current: SessionContext | None = None

    @property
    def current(self) -> SessionContext | None:
        return self._current

    def restore(self) -> SessionContext | None:
        """Pick up a session key left by a previous process, if any."""
        key = self._store.read(_KEY_FILE)
        if not key:
            return None
        session_id = self._store.read(_ID_FILE) or generate_session_id()
        with self._lock:
            self._current = SessionContext(session_id=session_id, key=key)
        logger.info("Restored session %s", session_id)
        return self._current

    def start(self, key: str | None = None) -> SessionContext:
        context = SessionContext(session_id=generate_session_id(), key=key or generate_session_key())
        self._store.write(_KEY_FILE, context.key)
        self._store.write(_ID_FILE, context.session_id)
        with self._lock:
            self._current = context
        logger.info("Session key has been set (session=%s)", context.session_id)
        return context

    def end(self) -> None:
        with self._lock:
            previous = self._current
            self._current = None
        self._store.delete(_KEY_FILE)
        self._store.delete(_ID_FILE)
        if previous is not None:
            logger.info("Session key has been cleared (session=%s)", previous.session_id)

    def rotate(self) -> SessionContext:
        if self._current is None:
            raise SessionError()
        self.end()
        return self.start()

    def session_key(self) -> str | None:
        current = self._current
        return current.key if current is not None else None
