import pytest

from songquiz.services.games import SocketIOScheduler


class StepSocketIO:
    """Records sleeps and keeps background tasks until the test runs them."""

    def __init__(self):
        self.sleeps = []
        self.tasks = []
        self.on_sleep = None

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        if self.on_sleep:
            self.on_sleep()

    def start_background_task(self, target):
        self.tasks.append(target)


def test_timer_fires_after_full_delay():
    sio = StepSocketIO()
    fired = []
    handle = SocketIOScheduler(sio, poll_sec=0.25).call_later(1, lambda: fired.append('reveal'), phase='reveal')

    sio.tasks[0]()
    assert sum(sio.sleeps) == pytest.approx(1)
    assert fired == ['reveal']
    assert handle.fired


def test_cancelled_timer_task_returns_within_one_step():
    sio = StepSocketIO()
    fired = []
    handle = SocketIOScheduler(sio, poll_sec=0.25).call_later(30, lambda: fired.append('guess'), phase='guess')
    sio.on_sleep = handle.cancel

    sio.tasks[0]()
    assert sio.sleeps == [0.25]
    assert fired == []
    assert not handle.fired
