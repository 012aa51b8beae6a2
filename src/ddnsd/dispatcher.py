"""Fan-out of address changes to every destination."""

import asyncio
import logging
from typing import Optional, Sequence

from ddnsd.address import Address
from ddnsd.updater import Updater

logger = logging.getLogger(__name__)


class ChangeDispatcher:
    """Broadcasts each address from the inbox to all registered updaters.

    Sources put addresses on :attr:`inbox`. The dispatcher hands each one
    to every updater in registration order, waiting only until the
    updater's queue accepts it, not until its deliveries finish.

    Usage:
        dispatcher = ChangeDispatcher([cloudflare, http_requests])
        await dispatcher.start()
        await dispatcher.inbox.put(address)
    """

    QUEUE_SIZE = 10

    def __init__(self, updaters: Optional[Sequence[Updater]] = None):
        """Initialize dispatcher.

        Args:
            updaters: Started updaters, in broadcast order.
        """
        self._updaters: list[Updater] = list(updaters or [])
        self._inbox: asyncio.Queue[Address] = asyncio.Queue(maxsize=self.QUEUE_SIZE)
        self._task: Optional[asyncio.Task] = None

    @property
    def inbox(self) -> "asyncio.Queue[Address]":
        """Queue that address sources write to."""
        return self._inbox

    @property
    def updaters(self) -> tuple[Updater, ...]:
        """Registered updaters in broadcast order."""
        return tuple(self._updaters)

    @property
    def is_running(self) -> bool:
        """Whether the dispatch loop is active."""
        return self._task is not None and not self._task.done()

    def register(self, updater: Updater) -> None:
        """Append an updater to the broadcast list."""
        self._updaters.append(updater)
        logger.debug("Registered updater %s", updater.name)

    async def start(self) -> None:
        """Start the dispatch loop."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._dispatch_loop(), name="dispatcher")
        logger.debug("Dispatcher started with %d updater(s)", len(self._updaters))

    async def stop(self) -> None:
        """Stop the dispatch loop."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def dispatch(self, address: Address) -> None:
        """Hand one address to every updater."""
        logger.info("Received update request for %s, sending to all updaters", address)
        for updater in self._updaters:
            await updater.submit(address)

    async def _dispatch_loop(self) -> None:
        while True:
            address = await self._inbox.get()
            try:
                await self.dispatch(address)
            finally:
                self._inbox.task_done()
