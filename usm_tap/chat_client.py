from __future__ import annotations

import json
import logging
import time
from typing import Any

import httpx

from .config import Settings
from .exceptions import (
    ChatNetworkError,
    ChatServiceError,
    ChatStatusError,
    ChatTimeoutError,
    InvalidResponseError,
)
from .filters import ChatContext, build_filters
from .models import ApiStatus

logger = logging.getLogger(__name__)

_FALLBACK_KEYS = ("response", "message", "content", "text", "output", "result")


def build_headers(token: str | None) -> dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def default_thread_id() -> str:
    return f"ocean_session_{int(time.time() * 1000)}"


def extract_response_text(payload: Any) -> str:
    """Pull the assistant text out of any of the response shapes the chat API uses."""
    if isinstance(payload, dict):
        run_items = payload.get("run_items")
        if isinstance(run_items, list):
            for item in run_items:
                if not isinstance(item, dict) or not isinstance(item.get("content"), list):
                    continue
                for part in item["content"]:
                    if (
                        isinstance(part, dict)
                        and part.get("type") == "output_text"
                        and part.get("text") is not None
                    ):
                        return str(part["text"])

        for key in _FALLBACK_KEYS:
            value = payload.get(key)
            if value is not None:
                return str(value)

    if isinstance(payload, str):
        return payload

    raise InvalidResponseError()


class ChatApiClient:
    """Thin wrapper over the remote CubeAI chat API."""

    def __init__(self, settings: Settings, http_client: httpx.Client | None = None) -> None:
        self._settings = settings
        self._timeout = httpx.Timeout(settings.chat_timeout_seconds)
        self._client = http_client or httpx.Client(timeout=self._timeout)
        self._owns_client = http_client is None

        if settings.environment == "production" and not settings.chat_base_url.startswith("https://"):
            logger.warning("Insecure chat API endpoint configured for production: %s", settings.chat_base_url)

    @property
    def endpoint(self) -> str:
        return self._settings.chat_endpoint

    @property
    def has_api_key(self) -> bool:
        return bool(self._settings.chat_bearer_token)

    def send(
        self,
        message: str,
        context: ChatContext | None = None,
        thread_id: str | None = None,
    ) -> str:
        context = context or ChatContext()
        body = {
            "input": message,
            "filters": build_filters(context),
            "thread_id": thread_id or context.thread_id or default_thread_id(),
        }

        try:
            content = json.dumps(body, allow_nan=False)
        except (TypeError, ValueError) as exc:
            raise ChatServiceError(f"Could not encode request: {exc}") from exc

        try:
            response = self._client.post(
                self.endpoint,
                content=content,
                headers=build_headers(self._settings.chat_bearer_token),
                timeout=self._timeout,
            )
        except httpx.TimeoutException as exc:
            raise ChatTimeoutError() from exc
        except httpx.HTTPError as exc:
            raise ChatNetworkError(f"Network error: {exc}") from exc

        if not response.is_success:
            raise ChatStatusError(response.status_code, response.reason_phrase)

        try:
            payload = response.json()
        except ValueError as exc:
            raise InvalidResponseError() from exc

        text = extract_response_text(payload)
        if not text.strip():
            raise ChatServiceError("Empty response from API")
        return text

    def health_check(self) -> bool:
        try:
            response = self._client.get(
                self._settings.health_endpoint,
                headers=build_headers(self._settings.chat_bearer_token),
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            logger.warning("Chat API health check failed: %s", exc)
            return False
        return response.is_success

    def get_api_status(self) -> ApiStatus:
        status = ApiStatus(endpoint=self.endpoint, has_api_key=self.has_api_key)
        return status.with_connection(self.health_check())

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
