"""
Non-overlapping polling scheduler.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class PollingScheduler:
    """
    Runs an async task repeatedly on the running event loop.

    The next tick is scheduled `interval` seconds after the previous
    invocation completes, so a slow task never overlaps with itself.
    Errors raised by the task are logged and handed to `on_error`; the
    schedule continues.
    """

    def __init__(
        self,
        task: Callable[[], Awaitable[None]],
        interval: float,
        immediate: bool = True,
        enabled: bool = True,
        on_error: Optional[Callable[[Exception], None]] = None,
        name: str = "poller",
    ):
        """
        Initialize scheduler.

        Args:
            task: Coroutine function invoked on each tick
            interval: Seconds between the end of one call and the next
            immediate: Invoke the task as soon as polling (re)starts
            enabled: Initial enabled state
            on_error: Receives exceptions raised by the task
            name: Label used in log messages
        """
        if interval <= 0:
            raise ValueError(f"Interval must be positive: {interval}")
        self.task = task
        self.immediate = immediate
        self.on_error = on_error
        self.name = name
        self._interval = interval
        self._enabled = enabled
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._in_flight: Optional[asyncio.Task] = None
        self.invocations = 0

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def started(self) -> bool:
        return self._loop is not None

    @property
    def busy(self) -> bool:
        """Whether an invocation is currently running."""
        return self._in_flight is not None

    @property
    def pending(self) -> bool:
        """Whether a tick is scheduled but not yet started."""
        return self._timer is not None

    def start(self) -> None:
        """Start polling on the running event loop."""
        if self._loop is not None:
            return
        self._loop = asyncio.get_running_loop()
        if self._enabled:
            self._resume()

    def set_enabled(self, enabled: bool) -> None:
        """
        Enable or disable polling.

        Disabling cancels the pending tick only; an in-flight call runs
        to completion and schedules nothing afterwards.
        """
        if enabled == self._enabled:
            return
        self._enabled = enabled
        logger.debug(f"{self.name}: polling {'enabled' if enabled else 'disabled'}")
        if self._loop is None:
            return
        if enabled:
            self._resume()
        else:
            self._cancel_timer()

    def set_interval(self, interval: float) -> None:
        """Change the interval; an already scheduled tick keeps its delay."""
        if interval <= 0:
            raise ValueError(f"Interval must be positive: {interval}")
        self._interval = interval

    async def stop(self) -> None:
        """Disable polling and wait for any in-flight call to finish."""
        self.set_enabled(False)
        in_flight = self._in_flight
        if in_flight is not None:
            await asyncio.wait([in_flight])

    def _resume(self) -> None:
        # A running call reschedules itself when it completes.
        if self._in_flight is not None:
            return
        self._schedule(0 if self.immediate else self._interval)

    def _schedule(self, delay: float) -> None:
        self._cancel_timer()
        self._timer = self._loop.call_later(delay, self._fire)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self) -> None:
        self._timer = None
        if not self._enabled or self._in_flight is not None:
            return
        self._in_flight = self._loop.create_task(self._invoke())
        self._in_flight.add_done_callback(self._on_done)

    async def _invoke(self) -> None:
        self.invocations += 1
        try:
            await self.task()
        except Exception as e:
            logger.exception(f"{self.name}: task failed: {e}")
            if self.on_error is not None:
                try:
                    self.on_error(e)
                except Exception:
                    logger.exception(f"{self.name}: error handler failed")

    def _on_done(self, task: asyncio.Task) -> None:
        self._in_flight = None
        if task.cancelled():
            return
        if self._enabled and not self._loop.is_closed():
            self._schedule(self._interval)
