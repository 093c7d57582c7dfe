from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

import httpx
from flask import Flask, jsonify
from flask_cors import CORS

from .animation import AnimationController
from .api import build_api_blueprint
from .chat_client import ChatApiClient
from .chat_session import ApiStatusMonitor, ChatSession
from .config import Settings
from .exceptions import AppError, ValidationError
from .holoocean import HoloOceanClient
from .security import RateLimiter, attach_security_headers, secure_endpoint
from .session import SessionKeyStore, SessionManager
from .storage import EncryptedStorage, RedisPreferences


def create_app(
    settings: Settings | None = None,
    http_client: httpx.Client | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Flask:
    settings = settings or Settings.from_env()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )
    logger = logging.getLogger(__name__)

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = settings.max_request_bytes

    CORS(
        app,
        resources={r"/api/*": {"origins": settings.allowed_origins}},
        supports_credentials=False,
    )

    sessions = SessionManager(SessionKeyStore(settings.session_key_dir))
    sessions.restore()
    preferences = RedisPreferences(settings.redis_url, settings.preference_namespace)
    storage = EncryptedStorage(preferences, sessions.session_key)

    chat_client = ChatApiClient(settings, http_client=http_client)
    chat = ChatSession(
        chat_client,
        max_retries=settings.chat_max_retries,
        base_delay=settings.chat_retry_base_delay_ms / 1000.0,
        sleep=sleep,
    )
    monitor = ApiStatusMonitor(chat, interval_seconds=settings.status_poll_seconds)
    animation = AnimationController()
    holoocean = HoloOceanClient(
        settings.holoocean_endpoint,
        settings.chat_base_url,
        token=settings.chat_bearer_token,
        connect_timeout=settings.holoocean_connect_timeout_seconds,
        http_client=http_client,
    )

    limiter = RateLimiter(settings)
    secure = secure_endpoint(settings, limiter)

    app.extensions["settings"] = settings
    app.extensions["animation"] = animation
    app.extensions["chat"] = chat
    app.extensions["sessions"] = sessions
    app.extensions["storage"] = storage
    app.extensions["holoocean"] = holoocean

    app.register_blueprint(
        build_api_blueprint(settings, animation, chat, monitor, sessions, storage, holoocean, secure)
    )

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        return jsonify({"error": error.message}), error.status_code

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        return jsonify({"error": error.message}), error.status_code

    @app.errorhandler(404)
    def not_found(_: Any):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(Exception)
    def unhandled_error(error: Exception):
        logger.exception("Unhandled error: %s", error)
        return jsonify({"error": "Internal server error"}), 500

    @app.after_request
    def security_headers(response):
        return attach_security_headers(response)

    if settings.status_poll_enabled:
        monitor.start()

    logger.info(
        "App initialized | chat=%s | preferences=%s | zero_trust=%s",
        settings.chat_endpoint,
        preferences.backend,
        settings.zero_trust_enabled,
    )

    return app
