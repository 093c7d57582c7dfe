from __future__ import annotations

import logging
import math
import threading
from collections.abc import Callable
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Protocol

from .exceptions import ValidationError

logger = logging.getLogger(__name__)

BASE_INTERVAL_MS = 500
MIN_INTERVAL_MS = 32
MAX_INTERVAL_MS = BASE_INTERVAL_MS * 2
MIN_SPEED = 0.1
MAX_SPEED = 5.0
SPEED_FACTOR = 1.5
MAX_FRAME_STEP = 10


class AnimationCommand(str, Enum):
    PLAY = "play"
    PAUSE = "pause"
    STOP = "stop"
    RESET = "reset"
    SPEED_UP = "speed_up"
    SPEED_DOWN = "speed_down"
    SET_SPEED = "set_speed"
    SET_FRAME = "set_frame"
    SYNC = "sync"


@dataclass(slots=True)
class AnimationState:
    is_playing: bool = False
    speed: float = 1.0
    current_frame: int = 0
    total_frames: int = 0

    @property
    def progress(self) -> float:
        if self.total_frames <= 0:
            return 0.0
        return min(1.0, max(0.0, self.current_frame / self.total_frames))

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["progress"] = round(self.progress, 5)
        payload["interval_ms"] = tick_interval_ms(self.speed)
        payload["frame_step"] = frame_step(self.speed)
        return payload


def clamp_speed(speed: float) -> float:
    return min(MAX_SPEED, max(MIN_SPEED, float(speed)))


def _ideal_interval_ms(speed: float) -> int:
    return max(1, int(round(BASE_INTERVAL_MS / speed)))


def tick_interval_ms(speed: float) -> int:
    """Timer period for ``speed``: 500 ms at 1x, bounded to [32, 1000] ms."""
    return min(MAX_INTERVAL_MS, max(MIN_INTERVAL_MS, _ideal_interval_ms(speed)))


def frame_step(speed: float) -> int:
    """Frames to advance per tick so playback keeps its speed once the tick is floored."""
    ideal = _ideal_interval_ms(speed)
    safe = tick_interval_ms(speed)
    if ideal >= safe:
        return 1
    return min(MAX_FRAME_STEP, max(1, math.ceil(safe / ideal)))


class Timer(Protocol):
    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], Timer]


class PeriodicTimer:
    """Calls ``callback`` every ``interval`` seconds on a daemon thread until cancelled."""

    def __init__(self, interval: float, callback: Callable[[], None]) -> None:
        self._interval = interval
        self._callback = callback
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, name="animation-timer", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stopped.wait(self._interval):
            try:
                self._callback()
            except Exception:
                logger.exception("Animation tick failed")

    def cancel(self) -> None:
        self._stopped.set()


class AnimationController:
    """Timeline playback state plus the timer that drives it."""

    def __init__(
        self,
        total_frames: int = 0,
        speed: float = 1.0,
        timer_factory: TimerFactory = PeriodicTimer,
        on_change: Callable[[AnimationState], None] | None = None,
    ) -> None:
        self._state = AnimationState(speed=clamp_speed(speed), total_frames=max(0, total_frames))
        self._timer_factory = timer_factory
        self._timer: Timer | None = None
        self._lock = threading.RLock()
        self._on_change = on_change

    @property
    def state(self) -> AnimationState:
        with self._lock:
            return AnimationState(**asdict(self._state))

    def dispatch(self, command: AnimationCommand | str, value: Any = None) -> AnimationState:
        try:
            command = AnimationCommand(command)
        except ValueError as exc:
            raise ValidationError(f"Unknown animation command: {command}") from exc

        if command is AnimationCommand.PLAY:
            return self.play()
        if command is AnimationCommand.PAUSE:
            return self.pause()
        if command is AnimationCommand.STOP:
            return self.stop()
        if command is AnimationCommand.RESET:
            return self.reset()
        if command is AnimationCommand.SPEED_UP:
            return self.speed_up()
        if command is AnimationCommand.SPEED_DOWN:
            return self.speed_down()
        if command is AnimationCommand.SET_SPEED:
            return self.set_speed(_require_number(value, "speed"))
        if command is AnimationCommand.SET_FRAME:
            return self.set_frame(int(_require_number(value, "frame")))
        return self.sync(int(_require_number(value, "total_frames")))

    def play(self) -> AnimationState:
        with self._lock:
            self._state.is_playing = True
            self._restart_timer()
            return self._changed()

    def pause(self) -> AnimationState:
        with self._lock:
            self._cancel_timer()
            self._state.is_playing = False
            return self._changed()

    def stop(self) -> AnimationState:
        with self._lock:
            self._cancel_timer()
            self._state.is_playing = False
            self._state.current_frame = 0
            return self._changed()

    def reset(self) -> AnimationState:
        """Replay from the first frame, or return to the initial state when empty."""
        with self._lock:
            self._cancel_timer()
            if self._state.total_frames > 0:
                self._state.current_frame = 0
                self._state.is_playing = True
                self._restart_timer()
            else:
                self._state = AnimationState()
            return self._changed()

    def speed_up(self) -> AnimationState:
        with self._lock:
            return self.set_speed(self._state.speed * SPEED_FACTOR)

    def speed_down(self) -> AnimationState:
        with self._lock:
            return self.set_speed(self._state.speed / SPEED_FACTOR)

    def set_speed(self, speed: float) -> AnimationState:
        if not math.isfinite(speed) or speed <= 0:
            raise ValidationError("speed must be a positive number")
        with self._lock:
            self._state.speed = clamp_speed(speed)
            if self._state.is_playing:
                self._restart_timer()
            return self._changed()

    def set_frame(self, frame: int) -> AnimationState:
        with self._lock:
            self._cancel_timer()
            self._state.is_playing = False
            last = max(0, self._state.total_frames - 1)
            self._state.current_frame = min(last, max(0, frame))
            return self._changed()

    def sync(self, total_frames: int) -> AnimationState:
        if total_frames < 0:
            raise ValidationError("total_frames must be >= 0")
        with self._lock:
            self._state.total_frames = total_frames
            self._state.current_frame = 0
            if self._state.is_playing:
                self._restart_timer()
            return self._changed()

    def tick(self) -> AnimationState:
        with self._lock:
            if not self._state.is_playing:
                return self.state
            if self._state.total_frames <= 0:
                logger.warning("Animation tick without frames; stopping playback")
                return self.stop()

            next_frame = self._state.current_frame + frame_step(self._state.speed)
            if next_frame >= self._state.total_frames:
                next_frame = 0
            self._state.current_frame = next_frame
            return self._changed()

    def dispose(self) -> None:
        with self._lock:
            self._cancel_timer()
            self._state.is_playing = False

    def _restart_timer(self) -> None:
        self._cancel_timer()
        interval = tick_interval_ms(self._state.speed)
        self._timer = self._timer_factory(interval / 1000.0, self.tick)
        logger.debug(
            "Animation timer started | interval=%sms | step=%s",
            interval,
            frame_step(self._state.speed),
        )

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _changed(self) -> AnimationState:
        snapshot = AnimationState(**asdict(self._state))
        if self._on_change is not None:
            self._on_change(snapshot)
        return snapshot


def _require_number(value: Any, name: str) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError) as exc:
        raise ValidationError(f"{name} must be a number") from exc
    if not math.isfinite(number):
        raise ValidationError(f"{name} must be a finite number")
    return number
