"""Base class for destinations that receive address changes.

Each updater owns a bounded queue and a single worker task. The worker
takes one address at a time and finishes every delivery for it before
taking the next, so batches for one destination never overlap.
"""

import asyncio
import logging
from typing import Any, Optional

from ddnsd.address import Address

logger = logging.getLogger(__name__)


class Updater:
    """Queue-fed destination for address changes.

    Subclasses set ``name``, decide whether they are initialized and
    implement :meth:`update`.

    Usage:
        updater = SomeUpdater(...)
        if await updater.start():
            await updater.submit(address)
        ...
        await updater.stop()
    """

    QUEUE_SIZE = 10

    name = "updater"

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Address] = asyncio.Queue(maxsize=self.QUEUE_SIZE)
        self._task: Optional[asyncio.Task] = None

    @property
    def is_initialized(self) -> bool:
        """Whether the updater has anything to deliver to."""
        return False

    @property
    def is_running(self) -> bool:
        """Whether the worker task is active."""
        return self._task is not None and not self._task.done()

    @property
    def pending(self) -> int:
        """Number of addresses waiting in the queue."""
        return self._queue.qsize()

    async def start(self) -> bool:
        """Start the worker if the updater is initialized.

        Returns:
            True if the worker is running.
        """
        if self.is_running:
            return True
        if not self.is_initialized:
            logger.info("Updater %s not initialized, not starting", self.name)
            return False

        self._task = asyncio.create_task(self._worker(), name=f"updater-{self.name}")
        logger.debug("Updater %s started", self.name)
        return True

    async def stop(self) -> None:
        """Stop the worker, dropping queued addresses."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.debug("Updater %s stopped", self.name)

    async def submit(self, address: Address) -> None:
        """Queue an address, waiting while the queue is full."""
        await self._queue.put(address)

    async def join(self) -> None:
        """Wait until every queued address has been fully processed."""
        await self._queue.join()

    async def update(self, address: Address) -> Any:
        """Deliver one address to this destination."""
        raise NotImplementedError

    async def _worker(self) -> None:
        while True:
            address = await self._queue.get()
            try:
                await self.update(address)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Updater %s failed to process %s", self.name, address)
            finally:
                self._queue.task_done()
