from __future__ import annotations

from typing import Any

from flask import Blueprint, jsonify, request

from .animation import AnimationController
from .chat_session import ApiStatusMonitor, ChatSession
from .config import Settings
from .exceptions import SessionError, ValidationError
from .filters import ChatContext
from .holoocean import HoloOceanClient
from .session import SessionManager
from .storage import EncryptedStorage


def _json_body(required: bool = True) -> dict[str, Any]:
    body = request.get_json(silent=True)
    if body is None:
        if required:
            raise ValidationError("JSON payload is required")
        return {}
    if not isinstance(body, dict):
        raise ValidationError("JSON payload must be an object")
    return body


def _as_float(body: dict[str, Any], name: str) -> float:
    value = body.get(name)
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{name} is required and must be a number")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{name} must be a number") from exc


def build_api_blueprint(
    settings: Settings,
    animation: AnimationController,
    chat: ChatSession,
    monitor: ApiStatusMonitor,
    sessions: SessionManager,
    storage: EncryptedStorage,
    holoocean: HoloOceanClient,
    secure,
) -> Blueprint:
    api = Blueprint("api", __name__, url_prefix="/api")

    @api.get("/health")
    def health() -> Any:
        return jsonify(
            {
                "status": "ok",
                "service": settings.app_name,
                "chat_endpoint": settings.chat_endpoint,
                "session_active": sessions.current is not None,
            }
        )

    @api.get("/status")
    @secure
    def api_status() -> Any:
        return jsonify(chat.api_status.to_dict())

    @api.post("/status/refresh")
    @secure
    def refresh_status() -> Any:
        return jsonify(monitor.refresh().to_dict())

    @api.get("/chat/messages")
    @secure
    def chat_messages() -> Any:
        return jsonify(chat.snapshot())

    @api.post("/chat/messages")
    @secure
    def send_chat_message() -> Any:
        body = _json_body()
        message = body.get("message")
        if not isinstance(message, str):
            raise ValidationError("message must be a string")
        context = ChatContext.from_mapping(body.get("context"))
        reply = chat.send_message(message, context)
        payload = chat.snapshot()
        payload["reply"] = reply.to_dict()
        return jsonify(payload)

    @api.delete("/chat/messages")
    @secure
    def clear_chat() -> Any:
        chat.clear()
        return jsonify(chat.snapshot())

    @api.post("/chat/retry")
    @secure
    def retry_chat() -> Any:
        body = _json_body(required=False)
        reply = chat.retry_last_message(ChatContext.from_mapping(body.get("context")))
        payload = chat.snapshot()
        payload["reply"] = reply.to_dict()
        return jsonify(payload)

    @api.post("/chat/welcome")
    @secure
    def welcome() -> Any:
        body = _json_body(required=False)
        reply = chat.initialize(ChatContext.from_mapping(body.get("context")))
        payload = chat.snapshot()
        payload["reply"] = reply.to_dict() if reply is not None else None
        return jsonify(payload)

    @api.get("/animation")
    @secure
    def animation_state() -> Any:
        return jsonify(animation.state.to_dict())

    @api.post("/animation")
    @secure
    def animation_command() -> Any:
        body = _json_body()
        command = body.get("command")
        if not isinstance(command, str):
            raise ValidationError("command must be a string")
        state = animation.dispatch(command, body.get("value"))
        return jsonify(state.to_dict())

    @api.post("/session")
    @secure
    def start_session() -> Any:
        context = sessions.start()
        return jsonify(context.to_dict()), 201

    @api.delete("/session")
    @secure
    def end_session() -> Any:
        if sessions.current is None:
            raise SessionError()
        sessions.end()
        return jsonify({"status": "ended"})

    @api.get("/preferences/<key>")
    @secure
    def get_preference(key: str) -> Any:
        if not storage.contains(key):
            return jsonify({"error": "Not found"}), 404
        return jsonify({"key": key, "value": storage.get(key)})

    @api.put("/preferences/<key>")
    @secure
    def put_preference(key: str) -> Any:
        body = _json_body()
        if "value" not in body:
            raise ValidationError("value is required")
        encrypted = storage.save(key, body["value"])
        return jsonify({"key": key, "encrypted": encrypted})

    @api.delete("/preferences/<key>")
    @secure
    def delete_preference(key: str) -> Any:
        storage.delete(key)
        return jsonify({"key": key, "deleted": True})

    @api.post("/holoocean/connect")
    @secure
    def holoocean_connect() -> Any:
        body = _json_body(required=False)
        holoocean.connect(body.get("config"))
        return jsonify(holoocean.status())

    @api.post("/holoocean/disconnect")
    @secure
    def holoocean_disconnect() -> Any:
        holoocean.disconnect()
        return jsonify(holoocean.status())

    @api.post("/holoocean/target")
    @secure
    def holoocean_target() -> Any:
        body = _json_body()
        time_value = body.get("time")
        target = holoocean.set_target(
            _as_float(body, "lat"),
            _as_float(body, "lon"),
            _as_float(body, "depth"),
            time=str(time_value) if time_value is not None else None,
        )
        return jsonify({"target": target, "status": holoocean.status()})

    @api.get("/holoocean/status")
    @secure
    def holoocean_status() -> Any:
        if request.args.get("refresh", "").lower() in {"1", "true", "yes"}:
            holoocean.get_status()
        return jsonify(holoocean.status())

    return api
