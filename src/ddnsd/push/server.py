"""DynDNS push endpoint.

Routers that support custom DynDNS providers can call this endpoint
with their current addresses instead of being polled:

- /ip?v4=...&v6=...&username=...&password=...
- /ip?v4=...&prefix=.../64 (when a local interface identifier is set)
- /health
"""

import asyncio
import hmac
import ipaddress
import logging
from typing import Optional

from aiohttp import BasicAuth, hdrs, web

from ddnsd.address import (
    Address,
    construct_address,
    parse_ipv4,
    parse_ipv6,
    parse_prefix,
)

logger = logging.getLogger(__name__)

REALM = "Authentication required to access this resource"


def credentials_match(
    username: str,
    password: str,
    expected_username: str,
    expected_password: str,
) -> bool:
    """Compare credentials in constant time.

    Both fields are always compared so the outcome does not reveal which
    one was wrong.
    """
    username_ok = hmac.compare_digest(username.encode(), expected_username.encode())
    password_ok = hmac.compare_digest(password.encode(), expected_password.encode())
    return username_ok & password_ok


class PushServer:
    """HTTP endpoint that accepts address updates pushed by a router.

    Authenticated requests always get 200, whether or not they carried a
    usable address. Only authentication failures change the status.
    """

    def __init__(
        self,
        out: "asyncio.Queue[Address]",
        username: str = "",
        password: str = "",
        basic_auth: bool = False,
        interface_id: Optional[ipaddress.IPv6Address] = None,
    ):
        """Initialize push server.

        Args:
            out: Queue receiving the addresses (the dispatcher inbox).
            username: Expected username.
            password: Expected password.
            basic_auth: Read credentials from the Authorization header
                instead of query parameters.
            interface_id: Local interface identifier. When set, IPv6 is
                built from the ``prefix`` parameter instead of read from
                ``v6``.
        """
        self._out = out
        self.username = username
        self.password = password
        self.basic_auth = basic_auth
        self.interface_id = interface_id

        self.app = web.Application()
        self._setup_routes()
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    def _setup_routes(self) -> None:
        self.app.router.add_get("/health", self._handle_health)
        self.app.router.add_get("/ip", self._handle_update)

    async def start(self, host: str = "0.0.0.0", port: int = 8080) -> None:
        """Start listening."""
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, host, port)
        await self._site.start()
        logger.info("DynDNS push server listening on %s:%d", host, port)

    async def stop(self) -> None:
        """Stop listening."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
            logger.info("DynDNS push server stopped")

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.Response(text="ok")

    async def _handle_update(self, request: web.Request) -> web.Response:
        params = request.query

        logger.info("Received incoming DynDNS update")

        if self.basic_auth:
            auth = self._read_basic_auth(request)
            if auth is None:
                logger.warning("Rejected due to missing basic auth")
                return web.Response(
                    status=401,
                    text="Unauthorized",
                    headers={hdrs.WWW_AUTHENTICATE: f'Basic realm="{REALM}"'},
                )
            username, password = auth.login, auth.password
        else:
            username = params.get("username", "")
            password = params.get("password", "")

        if not credentials_match(username, password, self.username, self.password):
            logger.warning("Rejected due to username / password mismatch")
            return web.Response(status=401, text="Unauthorized")

        ipv4 = parse_ipv4(params.get("v4"))
        if ipv4 is not None:
            logger.info("Forwarding update request for IPv4 %s", ipv4)
            await self._out.put(ipv4)

        if self.interface_id is None:
            ipv6 = parse_ipv6(params.get("v6"))
            if ipv6 is not None:
                logger.info("Forwarding update request for IPv6 %s", ipv6)
                await self._out.put(ipv6)
        else:
            try:
                prefix = parse_prefix(params.get("prefix"))
            except ValueError as e:
                logger.warning("Failed to parse prefix: %s", e)
            else:
                constructed = construct_address(prefix, self.interface_id)
                logger.info(
                    "Forwarding update request for IPv6 %s (prefix %s)", constructed, prefix
                )
                await self._out.put(constructed)

        return web.Response(status=200)

    @staticmethod
    def _read_basic_auth(request: web.Request) -> Optional[BasicAuth]:
        header = request.headers.get(hdrs.AUTHORIZATION)
        if not header:
            return None
        try:
            return BasicAuth.decode(header)
        except ValueError:
            return None
