from __future__ import annotations

import httpx


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["status"] == "ok"
    assert payload["chat_endpoint"] == "https://chat.test/chat/"
    assert payload["session_active"] is False
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_endpoints_require_auth(client):
    assert client.get("/api/chat/messages").status_code == 401
    response = client.get("/api/animation", headers={"Authorization": "Bearer wrong"})
    assert response.status_code == 401
    assert response.get_json()["error"] == "Invalid API credential"


def test_chat_round_trip(client, auth_headers, fake_api):
    fake_api.queue(httpx.Response(200, json={"response": "Surface currents are 0.3 m/s."}))

    response = client.post(
        "/api/chat/messages",
        json={"message": "How fast is the surface current?", "context": {"selectedArea": "Mobile Bay"}},
        headers=auth_headers,
    )

    assert response.status_code == 200
    body = response.get_json()
    assert body["reply"]["content"] == "Surface currents are 0.3 m/s."
    assert [msg["is_user"] for msg in body["messages"]] == [True, False]
    assert body["api_status"]["connected"] is True
    assert b"Mobile Bay" in fake_api.requests[0].content


def test_chat_failure_reports_unavailable(client, auth_headers, fake_api):
    fake_api.queue(httpx.Response(500), httpx.Response(500), httpx.Response(500))

    response = client.post("/api/chat/messages", json={"message": "hello"}, headers=auth_headers)

    assert response.status_code == 200
    body = response.get_json()
    assert body["reply"]["source"] == "error"
    assert body["api_status"]["connected"] is False
    assert "500" in body["last_error"]


def test_chat_validation(client, auth_headers):
    missing = client.post("/api/chat/messages", json={"text": "hi"}, headers=auth_headers)
    blank = client.post("/api/chat/messages", json={"message": "  "}, headers=auth_headers)

    assert missing.status_code == 400
    assert blank.status_code == 400


def test_clear_chat(client, auth_headers):
    client.post("/api/chat/messages", json={"message": "hello"}, headers=auth_headers)

    response = client.delete("/api/chat/messages", headers=auth_headers)

    assert response.get_json()["messages"] == []


def test_status_refresh(client, auth_headers, fake_api):
    fake_api.healthy = False

    response = client.post("/api/status/refresh", headers=auth_headers)

    assert response.status_code == 200
    assert response.get_json()["connected"] is False


def test_animation_commands(client, auth_headers):
    synced = client.post("/api/animation", json={"command": "sync", "value": 24}, headers=auth_headers)
    assert synced.get_json()["total_frames"] == 24

    framed = client.post("/api/animation", json={"command": "set_frame", "value": 12}, headers=auth_headers)
    assert framed.get_json()["progress"] == 0.5

    faster = client.post("/api/animation", json={"command": "speed_up"}, headers=auth_headers)
    assert faster.get_json()["speed"] == 1.5

    bad = client.post("/api/animation", json={"command": "rewind"}, headers=auth_headers)
    assert bad.status_code == 400


def test_session_and_encrypted_preferences(client, auth_headers, app):
    assert client.get("/api/preferences/layers", headers=auth_headers).status_code == 404

    started = client.post("/api/session", headers=auth_headers)
    assert started.status_code == 201
    assert "key" not in started.get_json()

    saved = client.put("/api/preferences/layers", json={"value": {"currents": True}}, headers=auth_headers)
    assert saved.get_json() == {"key": "layers", "encrypted": True}

    fetched = client.get("/api/preferences/layers", headers=auth_headers)
    assert fetched.get_json()["value"] == {"currents": True}

    ended = client.delete("/api/session", headers=auth_headers)
    assert ended.status_code == 200
    assert client.delete("/api/session", headers=auth_headers).status_code == 409

    deleted = client.delete("/api/preferences/layers", headers=auth_headers)
    assert deleted.get_json()["deleted"] is True


def test_holoocean_requires_connection(client, auth_headers):
    response = client.post(
        "/api/holoocean/target",
        json={"lat": 30.2, "lon": -88.0, "depth": 5},
        headers=auth_headers,
    )

    assert response.status_code == 503
    assert response.get_json()["error"] == "Not connected to HoloOcean"


def test_holoocean_target_validation(client, auth_headers):
    response = client.post("/api/holoocean/target", json={"lat": "north"}, headers=auth_headers)

    assert response.status_code == 400


def test_holoocean_status(client, auth_headers):
    response = client.get("/api/holoocean/status", headers=auth_headers)

    body = response.get_json()
    assert body["connection"]["is_connected"] is False
    assert body["connection"]["endpoint"] == "wss://chat.test/ws/holoocean"


def test_unknown_route(client):
    response = client.get("/api/nope")

    assert response.status_code == 404
    assert response.get_json() == {"error": "Not found"}


def test_non_finite_context_values_are_ignored(client, auth_headers, fake_api):
    for context in ({"playbackSpeed": "nan"}, {"currentFrame": "inf"}):
        response = client.post(
            "/api/chat/messages",
            json={"message": "hi", "context": context},
            headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.get_json()["reply"]["source"] == "api"

    assert len(fake_api.requests) == 2


def test_non_finite_animation_values_rejected(client, auth_headers):
    overflow = client.post("/api/animation", json={"command": "set_frame", "value": "1e999"}, headers=auth_headers)
    nan = client.post(
        "/api/animation",
        data='{"command": "sync", "value": NaN}',
        content_type="application/json",
        headers=auth_headers,
    )

    assert overflow.status_code == 400
    assert nan.status_code == 400


def test_preference_without_session_reports_plaintext(client, auth_headers):
    saved = client.put("/api/preferences/theme", json={"value": "dark"}, headers=auth_headers)

    assert saved.get_json() == {"key": "theme", "encrypted": False}
    assert client.get("/api/preferences/theme", headers=auth_headers).get_json()["value"] == "dark"


def test_holoocean_status_refresh(client, auth_headers, fake_api):
    fake_api.queue(
        httpx.Response(
            200,
            json={
                "holoocean": {"running": True, "tick_count": 9},
                "current": {"lat": 30.1, "lon": -88.1, "depth": 2},
            },
        )
    )

    response = client.get("/api/holoocean/status?refresh=1", headers=auth_headers)

    body = response.get_json()
    assert response.status_code == 200
    assert body["simulation"]["tick_count"] == 9
    assert body["position"]["current"] == {"lat": 30.1, "lon": -88.1, "depth": 2.0}
    assert str(fake_api.requests[0].url) == "https://chat.test/api/holoocean/status"
