from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable

from .crypto import decrypt_value, encrypt_value
from .exceptions import EncryptionError
from .retry import retry

logger = logging.getLogger(__name__)

try:
    import redis  # type: ignore
except Exception:  # pragma: no cover - optional dependency fallback
    redis = None


class MemoryPreferences:
    def __init__(self) -> None:
        self._store: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._store.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._store[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def keys(self) -> set[str]:
        with self._lock:
            return set(self._store)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()


class RedisPreferences:
    """String preferences in a Redis hash, mirrored in memory when Redis is down."""

    def __init__(self, redis_url: str, namespace: str = "usm_tap:prefs") -> None:
        self._client = None
        self._namespace = namespace
        self._memory_fallback = MemoryPreferences()

        if redis is None:
            logger.warning("redis package unavailable; using in-memory preferences")
            return

        try:
            self._client = redis.Redis.from_url(redis_url, decode_responses=True)
            self._ping()
            logger.info("Redis preference store enabled: %s", redis_url)
        except Exception as exc:
            logger.warning("Redis unavailable, falling back to in-memory preferences: %s", exc)
            self._client = None

    @property
    def backend(self) -> str:
        return "redis" if self._client is not None else "memory"

    @retry(attempts=2, initial_delay=0.05, retry_on=(Exception,))
    def _ping(self) -> None:
        if self._client is None:
            return
        self._client.ping()

    def get(self, key: str) -> str | None:
        if self._client is None:
            return self._memory_fallback.get(key)

        try:
            return self._client.hget(self._namespace, key)
        except Exception as exc:
            logger.warning("Redis get failed; serving from memory fallback: %s", exc)
            return self._memory_fallback.get(key)

    def set(self, key: str, value: str) -> None:
        self._memory_fallback.set(key, value)
        if self._client is None:
            return

        try:
            self._client.hset(self._namespace, key, value)
        except Exception as exc:
            logger.warning("Redis set failed; memory fallback retained value: %s", exc)

    def delete(self, key: str) -> None:
        self._memory_fallback.delete(key)
        if self._client is None:
            return

        try:
            self._client.hdel(self._namespace, key)
        except Exception as exc:
            logger.warning("Redis delete failed: %s", exc)

    def keys(self) -> set[str]:
        if self._client is None:
            return self._memory_fallback.keys()

        try:
            return set(self._client.hkeys(self._namespace))
        except Exception as exc:
            logger.warning("Redis keys failed; serving from memory fallback: %s", exc)
            return self._memory_fallback.keys()

    def clear(self) -> None:
        self._memory_fallback.clear()
        if self._client is None:
            return

        try:
            self._client.delete(self._namespace)
        except Exception as exc:
            logger.warning("Redis clear failed: %s", exc)


class EncryptedStorage:
    """JSON values encrypted with the active session key.

    Without a session key values are written as plaintext JSON.
    """

    def __init__(self, backend, key_provider: Callable[[], str | None]) -> None:
        self._backend = backend
        self._key_provider = key_provider

    def save(self, key: str, value: Any) -> bool:
        """Store ``value`` and return whether it was written encrypted."""
        serialized = json.dumps(value, separators=(",", ":"), default=str)
        session_key = self._key_provider()

        if not session_key:
            logger.warning("Session key not set. Data will not be encrypted.")
            self._backend.set(key, serialized)
            return False

        try:
            self._backend.set(key, encrypt_value(serialized, session_key))
        except EncryptionError as exc:
            logger.error("Error encrypting data, storing plaintext: %s", exc)
            self._backend.set(key, serialized)
            return False
        return True

    def get(self, key: str) -> Any:
        stored = self._backend.get(key)
        if stored is None:
            return None

        session_key = self._key_provider()
        if session_key:
            try:
                return json.loads(decrypt_value(stored, session_key))
            except (EncryptionError, ValueError) as exc:
                logger.warning("Error decrypting data from storage: %s", exc)
                return None

        try:
            return json.loads(stored)
        except ValueError:
            return stored

    def delete(self, key: str) -> None:
        self._backend.delete(key)

    def contains(self, key: str) -> bool:
        return self._backend.get(key) is not None

    def keys(self) -> set[str]:
        return self._backend.keys()

    def clear(self) -> None:
        self._backend.clear()
