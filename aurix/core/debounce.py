# aurix/core/debounce.py
"""
Quiet-period debounce with a hard fallback.

`poke()` restarts the quiet timer; the hard timer starts on the first poke and
is never restarted. Whichever expires first fires the action, at most once.
`cancel()` stops both timers. Coroutine actions are scheduled as tasks whose
failures are logged.
"""
import asyncio
import inspect
import logging
from typing import Any, Callable, Optional

logger = logging.getLogger("aurix.core.debounce")


def _log_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Debounced action failed: %s", exc, exc_info=exc)


class Debouncer:
    def __init__(self, quiet_period: float, hard_timeout: float, action: Callable[[], Any]):
        self.quiet_period = quiet_period
        self.hard_timeout = hard_timeout
        self.action = action
        self._quiet: Optional[asyncio.TimerHandle] = None
        self._hard: Optional[asyncio.TimerHandle] = None
        self._fired = False
        self._cancelled = False
        self.task: Optional[asyncio.Task] = None

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def pending(self) -> bool:
        return not (self._fired or self._cancelled) and self._hard is not None

    def poke(self) -> None:
        if self._fired or self._cancelled:
            return
        loop = asyncio.get_running_loop()
        if self._quiet is not None:
            self._quiet.cancel()
        self._quiet = loop.call_later(self.quiet_period, self._fire, "quiet")
        if self._hard is None:
            self._hard = loop.call_later(self.hard_timeout, self._fire, "hard timeout")

    def cancel(self) -> None:
        self._cancelled = True
        self._clear_timers()

    def _clear_timers(self) -> None:
        for handle in (self._quiet, self._hard):
            if handle is not None:
                handle.cancel()

    def _fire(self, trigger: str) -> None:
        if self._fired or self._cancelled:
            return
        self._fired = True
        self._clear_timers()
        logger.debug("Debounce fired (%s)", trigger)
        result = self.action()
        if inspect.isawaitable(result):
            self.task = asyncio.ensure_future(result)
            self.task.add_done_callback(_log_failure)
