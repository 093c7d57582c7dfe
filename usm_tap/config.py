from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int, minimum: int | None = None) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    if minimum is not None:
        value = max(minimum, value)
    return value


def _env_float(name: str, default: float, minimum: float | None = None) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    if minimum is not None:
        value = max(minimum, value)
    return value


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None:
        return default
    items = [item.strip() for item in raw.split(",") if item.strip()]
    return items if items else default


def holoocean_endpoint_from(base_url: str) -> str:
    """Derive the HoloOcean WebSocket endpoint from the HTTP base URL."""
    return f"{base_url.rstrip('/').replace('http', 'ws', 1)}/ws/holoocean"


@dataclass(slots=True)
class Settings:
    app_name: str
    environment: str
    zero_trust_enabled: bool
    api_key: str
    allowed_origins: List[str]
    redis_url: str
    rate_limit_per_minute: int
    rate_limit_window_seconds: int
    max_request_bytes: int
    chat_base_url: str
    chat_bearer_token: str
    chat_timeout_seconds: float
    chat_max_retries: int
    chat_retry_base_delay_ms: int
    status_poll_seconds: int
    status_poll_enabled: bool
    holoocean_endpoint: str
    holoocean_connect_timeout_seconds: float
    session_key_dir: Path
    preference_namespace: str

    @property
    def chat_endpoint(self) -> str:
        return f"{self.chat_base_url.rstrip('/')}/chat/"

    @property
    def health_endpoint(self) -> str:
        return f"{self.chat_base_url.rstrip('/')}/healthz"

    @classmethod
    def from_env(cls) -> "Settings":
        root = Path(__file__).resolve().parents[1]
        chat_base_url = os.getenv("BASE_URL", "https://demo-chat.isdata.ai").strip()
        key_dir = Path(os.getenv("SESSION_KEY_DIR", root / "var" / "keys"))

        return cls(
            app_name=os.getenv("APP_NAME", "Oceanographic Platform"),
            environment=os.getenv("APP_ENV", "production"),
            zero_trust_enabled=_env_bool("ZERO_TRUST_ENABLED", True),
            api_key=os.getenv("ZERO_TRUST_API_KEY", "change-me-in-production").strip(),
            allowed_origins=_env_list("ALLOWED_ORIGINS", ["http://localhost:5000"]),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            rate_limit_per_minute=_env_int("RATE_LIMIT_PER_MINUTE", 120, minimum=10),
            rate_limit_window_seconds=_env_int("RATE_LIMIT_WINDOW_SECONDS", 60, minimum=10),
            max_request_bytes=_env_int("MAX_REQUEST_BYTES", 1_048_576, minimum=1024),
            chat_base_url=chat_base_url,
            chat_bearer_token=os.getenv("BEARER_TOKEN", "").strip(),
            chat_timeout_seconds=_env_float("CHAT_TIMEOUT_SECONDS", 600.0, minimum=1.0),
            chat_max_retries=_env_int("CHAT_MAX_RETRIES", 2, minimum=0),
            chat_retry_base_delay_ms=_env_int("CHAT_RETRY_BASE_DELAY_MS", 1000, minimum=0),
            status_poll_seconds=_env_int("API_STATUS_POLL_SECONDS", 60, minimum=5),
            status_poll_enabled=_env_bool("API_STATUS_POLL_ENABLED", True),
            holoocean_endpoint=os.getenv(
                "HOLOOCEAN_WS_URL", holoocean_endpoint_from(chat_base_url)
            ).strip(),
            holoocean_connect_timeout_seconds=_env_float(
                "HOLOOCEAN_CONNECT_TIMEOUT_SECONDS", 30.0, minimum=1.0
            ),
            session_key_dir=key_dir,
            preference_namespace=os.getenv("PREFERENCE_NAMESPACE", "usm_tap:prefs"),
        )
