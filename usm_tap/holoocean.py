from __future__ import annotations

import json
import logging
import math
import threading
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import httpx
from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.sync.client import connect as ws_connect

from .chat_client import build_headers
from .exceptions import HoloOceanError, ValidationError

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6_371_000.0
TARGET_RADIUS_M = 10.0
TARGET_DEPTH_TOLERANCE_M = 1.0

Subscriber = Callable[[dict[str, Any]], None]


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def decode_frame(raw: str | bytes) -> dict[str, Any]:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        payload = json.loads(raw)
    except ValueError:
        return {"data": raw}
    if isinstance(payload, dict):
        return payload
    return {"raw": payload}


def _position(raw: Any) -> dict[str, float] | None:
    if not isinstance(raw, dict):
        return None
    if not isinstance(raw.get("lat"), (int, float)) or not isinstance(raw.get("lon"), (int, float)):
        return None
    position = {"lat": float(raw["lat"]), "lon": float(raw["lon"])}
    if isinstance(raw.get("depth"), (int, float)):
        position["depth"] = float(raw["depth"])
    return position


class HoloOceanTracker:
    """Latest simulator state derived from the sensor stream."""

    def __init__(self) -> None:
        self.target: dict[str, float] | None = None
        self.current: dict[str, float] | None = None
        self.simulation: dict[str, Any] = {}
        self.last_updated: str | None = None

    def apply(self, frame: dict[str, Any]) -> None:
        data = frame.get("data") if isinstance(frame.get("data"), dict) else frame
        target = _position(data.get("target"))
        current = _position(data.get("current"))
        if target is not None:
            self.target = target
        if current is not None:
            self.current = current
        if isinstance(data.get("holoocean"), dict):
            self.simulation = dict(data["holoocean"])
        self.last_updated = datetime.now(timezone.utc).isoformat()

    @property
    def distance_to_target(self) -> float | None:
        if self.target is None or self.current is None:
            return None
        return haversine_m(self.current["lat"], self.current["lon"], self.target["lat"], self.target["lon"])

    @property
    def depth_difference(self) -> float | None:
        if self.target is None or self.current is None:
            return None
        if "depth" not in self.target or "depth" not in self.current:
            return None
        return abs(self.current["depth"] - self.target["depth"])

    @property
    def is_at_target(self) -> bool:
        distance = self.distance_to_target
        depth_diff = self.depth_difference
        if distance is None or depth_diff is None:
            return False
        return distance < TARGET_RADIUS_M and depth_diff < TARGET_DEPTH_TOLERANCE_M

    def summary(self) -> dict[str, Any]:
        return {
            "simulation": {
                "is_running": bool(self.simulation.get("running", False)),
                "tick_count": int(self.simulation.get("tick_count", 0) or 0),
                "error": self.simulation.get("last_error"),
            },
            "position": {
                "target": self.target,
                "current": self.current,
                "distance_to_target": self.distance_to_target,
                "depth_difference": self.depth_difference,
                "is_at_target": self.is_at_target,
            },
            "last_updated": self.last_updated,
        }


class HoloOceanClient:
    """Command/stream client for the HoloOcean simulation sidecar."""

    def __init__(
        self,
        endpoint: str,
        base_url: str,
        token: str | None = None,
        connect_timeout: float = 30.0,
        http_client: httpx.Client | None = None,
        connector: Callable[..., Any] = ws_connect,
    ) -> None:
        self._endpoint = endpoint
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._connect_timeout = connect_timeout
        self._http = http_client or httpx.Client(timeout=httpx.Timeout(connect_timeout))
        self._connector = connector
        self._connection: Any = None
        self._reader: threading.Thread | None = None
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()
        self.tracker = HoloOceanTracker()
        self.last_error: str | None = None

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def connect(self, config: dict[str, Any] | None = None) -> None:
        if self.is_connected:
            return
        try:
            connection = self._connector(self._endpoint, open_timeout=self._connect_timeout)
        except (OSError, TimeoutError, WebSocketException) as exc:
            self.last_error = str(exc)
            raise HoloOceanError(f"Failed to connect to HoloOcean: {exc}") from exc

        self._connection = connection
        self.last_error = None
        logger.info("Connected to HoloOcean at %s", self._endpoint)

        if config is not None:
            self._send(config)

        self._reader = threading.Thread(
            target=self._read_loop, args=(connection,), name="holoocean-reader", daemon=True
        )
        self._reader.start()

    def disconnect(self) -> None:
        connection = self._connection
        self._connection = None
        if connection is None:
            return
        try:
            connection.close()
        except (OSError, WebSocketException) as exc:
            raise HoloOceanError(f"Failed to disconnect from HoloOcean: {exc}") from exc
        logger.info("Disconnected from HoloOcean")

    def send_command(self, command_type: str, data: dict[str, Any] | None = None) -> None:
        self._send({"type": command_type, "data": data or {}})

    def set_target(
        self,
        latitude: float,
        longitude: float,
        depth: float,
        time: str | None = None,
    ) -> dict[str, Any]:
        if not -90.0 <= latitude <= 90.0:
            raise ValidationError("latitude must be between -90 and 90")
        if not -180.0 <= longitude <= 180.0:
            raise ValidationError("longitude must be between -180 and 180")
        if depth < 0:
            raise ValidationError("depth must be >= 0")

        data: dict[str, Any] = {"latitude": latitude, "longitude": longitude, "depth": depth}
        if time is not None:
            data["time"] = time
        self.send_command("set_target", data)
        self.tracker.target = {"lat": latitude, "lon": longitude, "depth": depth}
        return data

    def get_status(self) -> dict[str, Any]:
        try:
            response = self._http.get(
                f"{self._base_url}/api/holoocean/status",
                headers=build_headers(self._token),
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.TimeoutException as exc:
            raise HoloOceanError("Connection timeout", status_code=504) from exc
        except httpx.HTTPStatusError as exc:
            raise HoloOceanError(f"Server error: {exc.response.status_code}", status_code=502) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise HoloOceanError(f"Network error: {exc}", status_code=502) from exc

        if isinstance(payload, dict):
            self.tracker.apply(payload)
        return payload

    def status(self) -> dict[str, Any]:
        summary = self.tracker.summary()
        summary["connection"] = {
            "is_connected": self.is_connected,
            "endpoint": self._endpoint,
            "ready_state": "OPEN" if self.is_connected else "CLOSED",
            "error": self.last_error,
        }
        return summary

    def _send(self, payload: dict[str, Any]) -> None:
        connection = self._connection
        if connection is None:
            raise HoloOceanError()
        try:
            connection.send(json.dumps(payload))
        except (OSError, WebSocketException) as exc:
            raise HoloOceanError(f"Failed to send command: {exc}", status_code=502) from exc

    def _read_loop(self, connection: Any) -> None:
        try:
            for raw in connection:
                frame = decode_frame(raw)
                self.tracker.apply(frame)
                self._publish(frame)
        except ConnectionClosed as exc:
            logger.warning("HoloOcean stream closed: %s", exc)
            self.last_error = str(exc)
        finally:
            if self._connection is connection:
                self._connection = None
            self._publish({"status": "stream closed"})

    def _publish(self, frame: dict[str, Any]) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(frame)
            except Exception:
                logger.exception("HoloOcean subscriber failed")
