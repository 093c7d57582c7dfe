from __future__ import annotations

from pathlib import Path
import sys

import httpx
import pytest

root = Path(__file__).resolve().parents[1]
if str(root) not in sys.path:
    sys.path.insert(0, str(root))


class FakeChatApi:
    """Scripted stand-in for the remote chat API, served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.responses: list[httpx.Response | Exception] = []
        self.requests: list[httpx.Request] = []
        self.healthy = True

    def queue(self, *items: httpx.Response | Exception) -> None:
        self.responses.extend(items)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/healthz":
            return httpx.Response(200 if self.healthy else 503, json={"ok": self.healthy})
        if not self.responses:
            return httpx.Response(200, json={"response": "default answer"})
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))


@pytest.fixture()
def fake_api():
    return FakeChatApi()


@pytest.fixture()
def settings_env(monkeypatch, tmp_path):
    monkeypatch.setenv("ZERO_TRUST_ENABLED", "true")
    monkeypatch.setenv("ZERO_TRUST_API_KEY", "test-token")
    monkeypatch.setenv("REDIS_URL", "redis://localhost:6391/0")
    monkeypatch.setenv("ALLOWED_ORIGINS", "http://localhost:5000")
    monkeypatch.setenv("BASE_URL", "https://chat.test")
    monkeypatch.setenv("BEARER_TOKEN", "remote-token")
    monkeypatch.setenv("CHAT_RETRY_BASE_DELAY_MS", "0")
    monkeypatch.setenv("API_STATUS_POLL_ENABLED", "false")
    monkeypatch.setenv("SESSION_KEY_DIR", str(tmp_path / "keys"))

    from usm_tap.config import Settings

    return Settings.from_env()


@pytest.fixture()
def app(settings_env, fake_api):
    from usm_tap import create_app

    flask_app = create_app(settings_env, http_client=fake_api.client(), sleep=lambda _: None)
    flask_app.config.update(TESTING=True)
    yield flask_app
    flask_app.extensions["animation"].dispose()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def auth_headers():
    return {"Authorization": "Bearer test-token"}
