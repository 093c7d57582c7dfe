from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Any

from .chat_client import ChatApiClient
from .exceptions import ChatServiceError, ValidationError
from .filters import ChatContext, detect_user_intent
from .models import ApiStatus, ChatMessage
from .retry import call_with_retry

logger = logging.getLogger(__name__)

UNAVAILABLE_MESSAGE = (
    "Unable to connect to CubeAI services. Please check your connection and try again."
)
WELCOME_PROMPT = "Generate a welcome message for CubeAI oceanographic analysis platform"


class ChatSession:
    """In-memory conversation with the chat API, including the bounded retry loop."""

    def __init__(
        self,
        client: ChatApiClient,
        max_retries: int = 2,
        base_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        on_message: Callable[[ChatMessage], None] | None = None,
    ) -> None:
        self._client = client
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._sleep = sleep
        self._on_message = on_message
        self._lock = threading.Lock()
        self._messages: list[ChatMessage] = []
        self._retry_count = 0
        self._is_typing = False
        self._initialized = False
        self._status = ApiStatus(endpoint=client.endpoint, has_api_key=client.has_api_key)
        self._thread_id = f"thread_{int(time.time() * 1000)}"
        self.last_error: str | None = None

    @property
    def messages(self) -> list[ChatMessage]:
        with self._lock:
            return list(self._messages)

    @property
    def retry_count(self) -> int:
        return self._retry_count

    @property
    def is_typing(self) -> bool:
        return self._is_typing

    @property
    def api_status(self) -> ApiStatus:
        return self._status

    @property
    def thread_id(self) -> str:
        return self._thread_id

    def send_message(self, text: str, context: ChatContext | None = None) -> ChatMessage:
        if not text or not text.strip():
            raise ValidationError("message must not be empty")

        self._append(ChatMessage.user(text))
        logger.debug("Chat message queued | intent=%s", detect_user_intent(text))
        return self._respond(text, context)

    def retry_last_message(self, context: ChatContext | None = None) -> ChatMessage:
        last_user = next((msg for msg in reversed(self.messages) if msg.is_user), None)
        if last_user is None:
            raise ValidationError("No user message to retry")
        return self._respond(last_user.content, context)

    def initialize(self, context: ChatContext | None = None) -> ChatMessage | None:
        """Ask the API for a welcome message once per session."""
        with self._lock:
            if self._initialized or self._messages:
                return None
            self._initialized = True

        try:
            welcome = self._client.send(WELCOME_PROMPT, context, self._thread_id)
        except ChatServiceError as exc:
            logger.warning("Failed to get API welcome message: %s", exc.message)
            self._mark_connected(False, exc.message)
            return self._append(ChatMessage.assistant(UNAVAILABLE_MESSAGE, source="error"))

        self._mark_connected(True)
        return self._append(ChatMessage.assistant(welcome))

    def clear(self) -> None:
        with self._lock:
            self._messages = []
            self._retry_count = 0
            self.last_error = None

    def refresh_status(self) -> ApiStatus:
        status = self._client.get_api_status()
        with self._lock:
            self._status = status
        return status

    def snapshot(self) -> dict[str, Any]:
        return {
            "thread_id": self._thread_id,
            "messages": [msg.to_dict() for msg in self.messages],
            "is_typing": self._is_typing,
            "retry_count": self._retry_count,
            "api_status": self._status.to_dict(),
            "last_error": self.last_error,
        }

    def _respond(self, text: str, context: ChatContext | None) -> ChatMessage:
        with self._lock:
            self._retry_count = 0
            self._is_typing = True
        try:
            answer = call_with_retry(
                lambda attempt: self._client.send(text, context, self._thread_id),
                retries=self._max_retries,
                base_delay=self._base_delay,
                retry_on=(ChatServiceError,),
                on_retry=self._on_retry,
                sleep=self._sleep,
            )
        except ChatServiceError as exc:
            logger.error(
                "Chat request failed after %s attempts: %s",
                self._max_retries + 1,
                exc.message,
            )
            with self._lock:
                retries = self._retry_count
            self._mark_connected(False, exc.message)
            return self._append(
                ChatMessage.assistant(UNAVAILABLE_MESSAGE, source="error", retry_attempt=retries)
            )
        finally:
            with self._lock:
                self._is_typing = False

        with self._lock:
            retries = self._retry_count
            self._retry_count = 0
        if retries:
            logger.info("Chat request succeeded after %s retries", retries)
        self._mark_connected(True)
        return self._append(ChatMessage.assistant(answer))

    def _on_retry(self, attempt: int, error: BaseException, delay: float) -> None:
        with self._lock:
            self._retry_count = attempt
        logger.warning(
            "AI response attempt %s failed: %s; retrying in %.0fms",
            attempt,
            error,
            delay * 1000,
        )

    def _mark_connected(self, connected: bool, error: str | None = None) -> None:
        with self._lock:
            self._status = self._status.with_connection(connected)
            self.last_error = error

    def _append(self, message: ChatMessage) -> ChatMessage:
        with self._lock:
            self._messages.append(message)
        if self._on_message is not None:
            self._on_message(message)
        return message


class ApiStatusMonitor:
    """Refreshes the session's API status on a fixed interval."""

    def __init__(self, session: ChatSession, interval_seconds: float = 60.0) -> None:
        self._session = session
        self._interval = interval_seconds
        self._stopped = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stopped.clear()
        self._thread = threading.Thread(target=self._run, name="api-status-monitor", daemon=True)
        self._thread.start()
        logger.info("API status polling started (interval=%ss)", self._interval)

    def stop(self) -> None:
        self._stopped.set()
        if self._thread is not None:
            self._thread.join(timeout=1.0)
            self._thread = None

    def refresh(self) -> ApiStatus:
        return self._session.refresh_status()

    def _run(self) -> None:
        self._refresh_quietly()
        while not self._stopped.wait(self._interval):
            self._refresh_quietly()

    def _refresh_quietly(self) -> None:
        try:
            self.refresh()
        except Exception as exc:
            logger.warning("Failed to check API status: %s", exc)
