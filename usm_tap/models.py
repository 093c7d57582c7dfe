from __future__ import annotations

import itertools
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any

_message_counter = itertools.count(1)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def new_message_id() -> str:
    return f"msg_{int(time.time() * 1000)}_{next(_message_counter)}"


@dataclass(frozen=True, slots=True)
class ChatMessage:
    id: str
    content: str
    is_user: bool
    source: str
    timestamp: datetime
    retry_attempt: int = 0

    @classmethod
    def user(cls, content: str) -> "ChatMessage":
        return cls(id=new_message_id(), content=content, is_user=True, source="user", timestamp=_now())

    @classmethod
    def assistant(cls, content: str, source: str = "api", retry_attempt: int = 0) -> "ChatMessage":
        return cls(
            id=new_message_id(),
            content=content,
            is_user=False,
            source=source,
            timestamp=_now(),
            retry_attempt=retry_attempt,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "is_user": self.is_user,
            "source": self.source,
            "timestamp": self.timestamp.isoformat(),
            "retry_attempt": self.retry_attempt,
        }


@dataclass(frozen=True, slots=True)
class ApiStatus:
    connected: bool = False
    endpoint: str = ""
    timestamp: datetime | None = None
    has_api_key: bool = False

    def with_connection(self, connected: bool) -> "ApiStatus":
        return replace(self, connected=connected, timestamp=_now())

    def to_dict(self) -> dict[str, Any]:
        return {
            "connected": self.connected,
            "endpoint": self.endpoint,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "has_api_key": self.has_api_key,
        }
