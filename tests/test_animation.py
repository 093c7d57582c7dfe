from __future__ import annotations

import threading
import time

import pytest

from usm_tap.animation import (
    MAX_SPEED,
    MIN_SPEED,
    AnimationController,
    PeriodicTimer,
    frame_step,
    tick_interval_ms,
)
from usm_tap.exceptions import ValidationError


class FakeTimer:
    def __init__(self, interval, callback):
        self.interval = interval
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


@pytest.fixture()
def timers():
    return []


@pytest.fixture()
def controller(timers):
    def factory(interval, callback):
        timer = FakeTimer(interval, callback)
        timers.append(timer)
        return timer

    return AnimationController(total_frames=10, timer_factory=factory)


def test_tick_interval_bounds_over_speed_range():
    speed = MIN_SPEED
    while speed <= MAX_SPEED:
        assert 32 <= tick_interval_ms(speed) <= 1000
        speed = round(speed + 0.05, 2)


def test_interval_and_step_values():
    assert tick_interval_ms(1.0) == 500
    assert tick_interval_ms(0.1) == 1000
    assert tick_interval_ms(5.0) == 100
    assert tick_interval_ms(50.0) == 32
    assert frame_step(1.0) == 1
    assert frame_step(50.0) == 4
    assert frame_step(1000.0) == 10


def test_play_starts_timer_with_speed_interval(controller, timers):
    state = controller.play()

    assert state.is_playing is True
    assert len(timers) == 1
    assert timers[0].interval == pytest.approx(0.5)


def test_ticks_wrap_at_boundary(controller):
    controller.play()
    frames = [controller.tick().current_frame for _ in range(12)]

    assert frames == [1, 2, 3, 4, 5, 6, 7, 8, 9, 0, 1, 2]
    assert all(0 <= frame < 10 for frame in frames)


def test_pause_keeps_frame_and_stop_resets(controller, timers):
    controller.play()
    controller.tick()
    controller.tick()

    paused = controller.pause()
    assert paused.is_playing is False
    assert paused.current_frame == 2
    assert timers[0].cancelled is True
    assert controller.tick().current_frame == 2

    stopped = controller.stop()
    assert stopped.current_frame == 0
    assert stopped.is_playing is False


def test_speed_changes_clamp_and_restart_timer(controller, timers):
    controller.play()
    for _ in range(10):
        state = controller.speed_up()
    assert state.speed == MAX_SPEED
    assert timers[-1].interval == pytest.approx(0.1)
    assert all(timer.cancelled for timer in timers[:-1])

    for _ in range(20):
        state = controller.speed_down()
    assert state.speed == MIN_SPEED

    assert controller.set_speed(2.0).speed == 2.0
    with pytest.raises(ValidationError):
        controller.set_speed(0)


def test_set_frame_pauses_and_clamps(controller):
    controller.play()
    state = controller.set_frame(42)

    assert state.is_playing is False
    assert state.current_frame == 9
    assert controller.set_frame(-3).current_frame == 0


def test_sync_resets_frame_and_keeps_play_state(controller):
    controller.play()
    controller.tick()

    state = controller.sync(48)

    assert state.total_frames == 48
    assert state.current_frame == 0
    assert state.is_playing is True


def test_reset_replays_from_first_frame(controller):
    controller.set_frame(5)

    state = controller.reset()

    assert state.current_frame == 0
    assert state.is_playing is True


def test_reset_without_frames_returns_to_initial(timers):
    controller = AnimationController(timer_factory=lambda interval, cb: FakeTimer(interval, cb))
    controller.set_speed(3.0)

    state = controller.reset()

    assert state.speed == 1.0
    assert state.total_frames == 0
    assert state.is_playing is False


def test_tick_without_frames_stops_timer(timers):
    def factory(interval, callback):
        timer = FakeTimer(interval, callback)
        timers.append(timer)
        return timer

    controller = AnimationController(total_frames=0, timer_factory=factory)
    controller.play()

    state = controller.tick()

    assert state.is_playing is False
    assert timers[0].cancelled is True


def test_dispatch_by_name(controller):
    assert controller.dispatch("play").is_playing is True
    assert controller.dispatch("set_speed", "2.5").speed == 2.5
    assert controller.dispatch("sync", 30).total_frames == 30
    with pytest.raises(ValidationError):
        controller.dispatch("rewind")
    with pytest.raises(ValidationError):
        controller.dispatch("set_frame", None)


def test_progress_is_reported(controller):
    controller.set_frame(5)

    payload = controller.state.to_dict()

    assert payload["progress"] == 0.5
    assert payload["interval_ms"] == 500
    assert payload["frame_step"] == 1


@pytest.mark.parametrize(
    ("command", "value"),
    [("set_frame", "1e999"), ("sync", float("nan")), ("set_speed", "inf"), ("set_frame", 10**400)],
)
def test_non_finite_command_values_rejected(controller, command, value):
    with pytest.raises(ValidationError):
        controller.dispatch(command, value)

    assert controller.state.current_frame == 0


def test_set_speed_rejects_nan(controller):
    with pytest.raises(ValidationError):
        controller.set_speed(float("nan"))
    assert controller.state.speed == 1.0


def test_periodic_timer_ticks_until_cancelled():
    ticked = threading.Event()
    calls = []

    def callback():
        calls.append(time.monotonic())
        if len(calls) >= 3:
            ticked.set()

    timer = PeriodicTimer(0.01, callback)
    try:
        assert ticked.wait(5)
    finally:
        timer.cancel()

    time.sleep(0.05)
    settled = len(calls)
    time.sleep(0.1)
    assert len(calls) == settled


def test_periodic_timer_survives_callback_errors():
    calls = []
    done = threading.Event()

    def callback():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("boom")
        done.set()

    timer = PeriodicTimer(0.01, callback)
    try:
        assert done.wait(5)
    finally:
        timer.cancel()


def test_controller_with_real_timer_advances_and_pauses():
    controller = AnimationController(total_frames=1000, speed=MAX_SPEED)
    try:
        controller.play()
        deadline = time.monotonic() + 5
        while controller.state.current_frame < 2 and time.monotonic() < deadline:
            time.sleep(0.01)
        paused = controller.pause()
        assert paused.current_frame >= 2

        time.sleep(0.3)
        assert controller.state.current_frame == paused.current_frame
    finally:
        controller.dispose()


def test_concurrent_speed_changes_leave_one_live_timer(controller, timers):
    controller.play()

    def hammer():
        for _ in range(50):
            controller.speed_up()
            controller.speed_down()

    workers = [threading.Thread(target=hammer) for _ in range(8)]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join()

    assert MIN_SPEED <= controller.state.speed <= MAX_SPEED
    assert [timer.cancelled for timer in timers].count(False) == 1
