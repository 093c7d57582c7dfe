from __future__ import annotations

from flask import Flask

from usm_tap.security import RateLimiter, extract_token, get_client_ip


def test_memory_limiter_blocks_after_limit(settings_env):
    settings_env.rate_limit_per_minute = 2
    limiter = RateLimiter(settings_env)

    assert limiter.check("10.0.0.1")[0] is True
    assert limiter.check("10.0.0.1")[:2] == (True, 0)
    allowed, remaining, reset = limiter.check("10.0.0.1")

    assert allowed is False
    assert remaining == 0
    assert 0 <= reset <= settings_env.rate_limit_window_seconds
    assert limiter.check("10.0.0.2")[0] is True


def test_token_and_client_extraction():
    app = Flask(__name__)

    with app.test_request_context(headers={"X-API-Key": '"abc"', "X-Forwarded-For": "1.2.3.4, 5.6.7.8"}):
        from flask import request

        assert extract_token(request) == "abc"
        assert get_client_ip(request) == "1.2.3.4"

    with app.test_request_context(headers={"Authorization": "Bearer  xyz "}):
        from flask import request

        assert extract_token(request) == "xyz"


def test_rate_limited_route_returns_429(client, auth_headers, settings_env):
    limiter_limit = settings_env.rate_limit_per_minute
    responses = [client.get("/api/animation", headers=auth_headers) for _ in range(limiter_limit + 1)]

    assert responses[-1].status_code == 429
    assert "Rate limit exceeded" in responses[-1].get_json()["error"]
    assert responses[0].headers["X-RateLimit-Remaining"] == str(limiter_limit - 1)
