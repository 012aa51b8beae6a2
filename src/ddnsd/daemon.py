"""Main daemon orchestration - ties all components together."""

import asyncio
import logging
import signal
from typing import Optional

from ddnsd.cloudflare import CloudflareUpdater
from ddnsd.config import Config
from ddnsd.dispatcher import ChangeDispatcher
from ddnsd.http_requests import HttpRequestsUpdater
from ddnsd.poll import FritzBox, RouterPoller
from ddnsd.push import PushServer
from ddnsd.updater import Updater

logger = logging.getLogger(__name__)


class Daemon:
    """Main daemon orchestrating all components.

    Responsibilities:
    - Create the destinations and start those that are configured
    - Broadcast address changes to the started destinations
    - Poll the router and serve the push endpoint, when configured
    - Handle graceful shutdown
    """

    def __init__(
        self,
        config: Config,
        updaters: Optional[list[Updater]] = None,
        router: Optional[FritzBox] = None,
    ):
        """Initialize daemon.

        Args:
            config: Daemon configuration.
            updaters: Optional injected destinations, in broadcast order
                (for testing).
            router: Optional injected router client (for testing).
        """
        self._config = config
        self._updaters = updaters
        self._router = router
        self._owns_router = False
        self._dispatcher: Optional[ChangeDispatcher] = None
        self._poller: Optional[RouterPoller] = None
        self._push_server: Optional[PushServer] = None
        self._running = False
        self._stop_event = asyncio.Event()

    @property
    def dispatcher(self) -> Optional[ChangeDispatcher]:
        return self._dispatcher

    @property
    def is_running(self) -> bool:
        return self._running

    def _create_updaters(self) -> list[Updater]:
        cloudflare = self._config.cloudflare
        return [
            CloudflareUpdater(
                api_token=cloudflare.api_token,
                api_email=cloudflare.api_email,
                api_key=cloudflare.api_key,
                ipv4_zones=cloudflare.zones_ipv4,
                ipv6_zones=cloudflare.zones_ipv6,
            ),
            HttpRequestsUpdater(self._config.http_requests),
        ]

    async def start(self) -> None:
        """Start all configured components."""
        if self._running:
            return

        logger.info("Starting daemon...")
        self._stop_event.clear()

        if self._updaters is None:
            self._updaters = self._create_updaters()

        self._dispatcher = ChangeDispatcher()
        for updater in self._updaters:
            if await updater.start():
                self._dispatcher.register(updater)
        if not self._dispatcher.updaters:
            logger.warning(
                "No destinations configured, address changes will only be logged"
            )
        await self._dispatcher.start()

        interface_id = self._config.local_address_ipv6

        push = self._config.push_server
        if push.enabled:
            self._push_server = PushServer(
                self._dispatcher.inbox,
                username=push.username,
                password=push.password,
                basic_auth=push.basic_auth,
                interface_id=interface_id,
            )
            await self._push_server.start(push.host, push.port)

        router = self._config.router
        if router.enabled:
            if self._router is None:
                self._router = FritzBox(router.url, timeout=router.timeout)
                self._owns_router = True
                await self._router.open()
            self._poller = RouterPoller(
                self._router,
                self._dispatcher.inbox,
                interval=router.interval,
                interface_id=interface_id,
            )
            await self._poller.start()

        self._running = True
        logger.info("Daemon started")

    async def run_forever(self) -> None:
        """Run until SIGINT / SIGTERM or request_stop()."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_stop)
            except (NotImplementedError, RuntimeError):
                pass

        try:
            await self._stop_event.wait()
            logger.info("Shutdown detected")
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                try:
                    loop.remove_signal_handler(sig)
                except (NotImplementedError, RuntimeError):
                    pass

    def request_stop(self) -> None:
        """Ask run_forever() to return."""
        self._stop_event.set()

    async def stop(self) -> None:
        """Stop all components in reverse start order."""
        if self._poller:
            await self._poller.stop()
            self._poller = None

        if self._owns_router and self._router is not None:
            await self._router.close()
            self._router = None
            self._owns_router = False

        if self._push_server:
            await self._push_server.stop()
            self._push_server = None

        if self._dispatcher:
            await self._dispatcher.stop()

        for updater in reversed(self._updaters or []):
            await updater.stop()

        if self._running:
            logger.info("Daemon stopped")
        self._running = False
