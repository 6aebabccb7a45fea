import logging
import time
from typing import Callable

logger = logging.getLogger(__name__)


class TimerHandle:
    """A cancelable one-shot timer. Cancelling after it fired is a no-op."""

    def __init__(self, phase: str, delay: float):
        self.phase = phase
        self.delay = delay
        self.deadline = time.time() + delay
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def active(self) -> bool:
        return not self.cancelled and not self.fired


class SocketIOScheduler:
    """Runs room timers as Socket.IO background tasks.

    Each timer is its own task sleeping through the delay in short steps, so
    a cancelled handle lets its task return within one step without calling
    back.
    """

    def __init__(self, socketio, heartbeat_sec: int = 0, poll_sec: float = 0.25):
        self.socketio = socketio
        self.heartbeat_sec = heartbeat_sec
        self.poll_sec = poll_sec

    def call_later(self, delay: float, callback: Callable[[], None], phase: str = '') -> TimerHandle:
        handle = TimerHandle(phase, delay)

        def _worker():
            hb = self.heartbeat_sec if self.heartbeat_sec and self.heartbeat_sec > 0 else 0
            slept = 0.0
            since_beat = 0.0
            while slept < delay and not handle.cancelled:
                step = min(self.poll_sec, delay - slept)
                self.socketio.sleep(step)
                slept += step
                since_beat += step
                if hb and since_beat >= hb:
                    since_beat = 0.0
                    logger.debug(f"[timer-heartbeat] phase={phase} remaining={max(0, delay - slept)}s")
            if handle.cancelled:
                logger.debug(f"[timer-abort] phase={phase} cancelled")
                return
            handle.fired = True
            try:
                callback()
            except Exception:
                logger.exception(f"[timer-error] phase={phase}")

        self.socketio.start_background_task(_worker)
        return handle
