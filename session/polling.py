"""Poller — periodic background refresh (unread notification count, badges)."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from config import POLL_INTERVAL
from lending.errors import AuthExpired

logger = logging.getLogger(__name__)


class Poller:
    """Runs ``fetch`` every ``interval`` seconds and hands results to ``on_result``.

    Failures (of the fetch or of the handler) are logged and the loop keeps
    going; an expired session ends it.
    """

    def __init__(
        self,
        interval: float,
        fetch: Callable[[], Awaitable[Any]],
        on_result: Callable[[Any], None],
    ):
        self.fetch = fetch
        self.on_result = on_result
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Must be called from inside a running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while True:
            try:
                result = await self.fetch()
            except AuthExpired:
                logger.info("Session expired, polling stopped")
                return
            except Exception as e:
                logger.warning(f"Poll failed: {e}")
            else:
                try:
                    self.on_result(result)
                except Exception as e:
                    logger.error(f"Poll result handler failed: {e}")
            await asyncio.sleep(self.interval)


def unread_count_poller(backend, on_count: Callable[[int], None], interval: float = POLL_INTERVAL) -> Poller:
    """Poller feeding the notification badge."""

    async def fetch() -> int:
        response = await backend.get_unread_count()
        return int(response["data"]["count"])

    return Poller(interval, fetch, on_count)
