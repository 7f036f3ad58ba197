"""Escalating idle timeout for a supervised agent process.

States::

    ARMED ──(window elapses)──▶ FIRING ──(kill_delay elapses)──▶ DEAD
      ▲  │                         │
      └──┘ rearm()                 └── cancel() when the child exits

- ARMED: one timer, ``window`` seconds from the last activity.  Each
  ``rearm()`` restarts it.
- FIRING: ``on_terminate`` has been called (SIGTERM); a second timer of
  ``kill_delay`` seconds is running.  Activity no longer rearms.
- DEAD: ``on_kill`` has been called (SIGKILL plus any out-of-band
  cleanup).

Timers run on the event loop that owns the stdout reader, so rearming and
firing never race.
"""

import asyncio
import enum
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)

DEFAULT_GRACE = 30.0
DEFAULT_KILL_DELAY = 15.0


class TimeoutState(enum.Enum):
    ARMED = "armed"
    FIRING = "firing"
    DEAD = "dead"


def idle_window(configured: float, idle_timeout: float, grace: float = DEFAULT_GRACE) -> float:
    """Effective window: ``max(configured, idle_timeout + grace)``."""
    return max(configured, idle_timeout + grace)


class EscalatingTimeout:
    def __init__(
        self,
        window: float,
        *,
        on_terminate: Callable[[], None],
        on_kill: Callable[[], None],
        kill_delay: float = DEFAULT_KILL_DELAY,
        label: str = "",
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self.window = window
        self.kill_delay = kill_delay
        self.label = label
        self.state = TimeoutState.ARMED
        self._on_terminate = on_terminate
        self._on_kill = on_kill
        self._loop = loop or asyncio.get_running_loop()
        self._handle: asyncio.TimerHandle | None = None
        self._cancelled = False

    @property
    def timed_out(self) -> bool:
        return self.state is not TimeoutState.ARMED

    def start(self) -> None:
        self._schedule(self.window, self._fire)

    def rearm(self) -> bool:
        """Restart the idle window.  Ignored once the timeout has fired."""
        if self._cancelled or self.state is not TimeoutState.ARMED:
            return False
        self._schedule(self.window, self._fire)
        return True

    def cancel(self) -> None:
        """Stop all timers.  ``timed_out`` keeps its value."""
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _schedule(self, delay: float, callback: Callable[[], None]) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = self._loop.call_later(delay, callback)

    def _fire(self) -> None:
        self._handle = None
        if self._cancelled:
            return
        self.state = TimeoutState.FIRING
        logger.error("Agent process timeout, sending SIGTERM | process=%s", self.label)
        self._on_terminate()
        if not self._cancelled:
            self._schedule(self.kill_delay, self._escalate)

    def _escalate(self) -> None:
        self._handle = None
        if self._cancelled:
            return
        self.state = TimeoutState.DEAD
        logger.warning("SIGTERM ignored, sending SIGKILL | process=%s", self.label)
        self._on_kill()
