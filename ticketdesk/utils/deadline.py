"""
Cancellable deadlines

A Deadline owns one asyncio task that waits for a fixed duration and then
runs a callback. The wait goes through an injectable sleep coroutine so
tests can release it on demand instead of waiting on the wall clock.
"""
import asyncio
from typing import Awaitable, Callable, Optional

from ticketdesk.utils.logger import get_logger

logger = get_logger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


class Deadline:
    """
    Run `on_expire` once `timeout` seconds have passed, unless cancelled first.

    Usage:
        deadline = Deadline(30.0, on_expire=handle_timeout, name="delete-prompt")
        deadline.start()
        ...
        deadline.cancel()  # safe to call any number of times
    """

    def __init__(
        self,
        timeout: float,
        on_expire: Callable[[], Awaitable[None]],
        *,
        sleep: Optional[SleepFunc] = None,
        name: str = "deadline"
    ):
        self.timeout = timeout
        self.name = name
        self._on_expire = on_expire
        self._sleep = sleep or asyncio.sleep
        self._task: Optional[asyncio.Task] = None
        self.expired = False
        self.cancelled = False

    def start(self) -> "Deadline":
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=self.name)
        return self

    async def _run(self) -> None:
        try:
            await self._sleep(self.timeout)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.cancelled:
            return
        self.expired = True
        try:
            await self._on_expire()
        except Exception as e:
            logger.error(f"[DEADLINE] {self.name} expiry handler failed: {e}", exc_info=True)

    def cancel(self) -> bool:
        """Cancel the pending wait. Returns False if the deadline already fired."""
        if self.expired:
            return False
        self.cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        return True

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    async def wait(self) -> None:
        """Wait for the deadline task to finish, whichever way it ends."""
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            pass
