"""Periodic router polling for WAN address changes."""

import asyncio
import ipaddress
import logging
from typing import Optional, Protocol

from ddnsd.address import Address, construct_address

logger = logging.getLogger(__name__)


class RouterClient(Protocol):
    """Protocol for the router client dependency."""

    async def get_wan_ipv4(self) -> ipaddress.IPv4Address:
        ...

    async def get_wan_ipv6(self) -> ipaddress.IPv6Address:
        ...

    async def get_ipv6_prefix(self) -> ipaddress.IPv6Network:
        ...


class RouterPoller:
    """Polls the router and forwards changed addresses.

    IPv4 and IPv6 are tracked separately; a failed query for one family
    does not hold back the other. With an interface identifier the IPv6
    address is built from the delegated prefix, and changes are detected
    on the prefix.
    """

    def __init__(
        self,
        router: RouterClient,
        out: "asyncio.Queue[Address]",
        interval: float = 300.0,
        interface_id: Optional[ipaddress.IPv6Address] = None,
    ):
        """Initialize poller.

        Args:
            router: Router client.
            out: Queue receiving changed addresses (the dispatcher inbox).
            interval: Seconds between polls.
            interface_id: Local interface identifier for prefix mode.
        """
        self._router = router
        self._out = out
        self._interval = interval
        self._interface_id = interface_id
        self._last_ipv4: Optional[ipaddress.IPv4Address] = None
        self._last_ipv6: Optional[ipaddress.IPv6Address] = None
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def last_ipv4(self) -> Optional[ipaddress.IPv4Address]:
        """Last forwarded IPv4 address."""
        return self._last_ipv4

    @property
    def last_ipv6(self) -> Optional[ipaddress.IPv6Address]:
        """Last forwarded IPv6 address, or prefix address in prefix mode."""
        return self._last_ipv6

    @property
    def is_running(self) -> bool:
        """Whether polling is active."""
        return self._running

    async def start(self) -> None:
        """Poll once, then keep polling in the background."""
        if self._running:
            return

        self._running = True
        await self.poll()
        self._task = asyncio.create_task(self._poll_loop(), name="router-poller")

    async def stop(self) -> None:
        """Stop polling."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Router poller stopped")

    async def poll(self) -> None:
        """Query the router once and forward what changed."""
        logger.debug("Polling WAN IPs from router")

        await self._poll_ipv4()
        if self._interface_id is None:
            await self._poll_ipv6()
        else:
            await self._poll_prefix(self._interface_id)

    async def _poll_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._interval)
            if not self._running:
                break
            await self.poll()

    async def _poll_ipv4(self) -> None:
        try:
            ipv4 = await self._router.get_wan_ipv4()
        except Exception as e:
            logger.warning("Failed to poll WAN IPv4 from router: %s", e)
            return

        if ipv4 != self._last_ipv4:
            logger.info("New WAN IPv4 found: %s", ipv4)
            await self._out.put(ipv4)
            self._last_ipv4 = ipv4

    async def _poll_ipv6(self) -> None:
        try:
            ipv6 = await self._router.get_wan_ipv6()
        except Exception as e:
            logger.warning("Failed to poll WAN IPv6 from router: %s", e)
            return

        if ipv6 != self._last_ipv6:
            logger.info("New WAN IPv6 found: %s", ipv6)
            await self._out.put(ipv6)
            self._last_ipv6 = ipv6

    async def _poll_prefix(self, interface_id: ipaddress.IPv6Address) -> None:
        try:
            prefix = await self._router.get_ipv6_prefix()
        except Exception as e:
            logger.warning("Failed to poll IPv6 prefix from router: %s", e)
            return

        if prefix.network_address != self._last_ipv6:
            constructed = construct_address(prefix, interface_id)
            logger.info("New IPv6 prefix found: %s, using %s", prefix, constructed)
            await self._out.put(constructed)
            self._last_ipv6 = prefix.network_address
