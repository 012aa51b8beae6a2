"""FRITZ!Box WAN address queries over UPnP (SOAP)."""

import asyncio
import ipaddress
import logging
import xml.etree.ElementTree as ElementTree
from typing import Optional

import aiohttp

from ddnsd.errors import RouterError

logger = logging.getLogger(__name__)

CONTROL_PATH = "/igdupnp/control/WANIPConn1"
SERVICE = "urn:schemas-upnp-org:service:WANIPConnection:1"

_ENVELOPE = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<s:Envelope xmlns:s="http://schemas.xmlsoap.org/soap/envelope/" '
    's:encodingStyle="http://schemas.xmlsoap.org/soap/encoding/">'
    '<s:Body><u:{action} xmlns:u="{service}" /></s:Body>'
    "</s:Envelope>"
)


class FritzBox:
    """Client for the WANIPConnection service of a FRITZ!Box."""

    DEFAULT_URL = "http://fritz.box:49000"
    DEFAULT_TIMEOUT = 10.0  # seconds

    def __init__(
        self,
        url: str = DEFAULT_URL,
        timeout: float = DEFAULT_TIMEOUT,
        http_session: Optional[aiohttp.ClientSession] = None,
    ):
        """Initialize client.

        Args:
            url: Router UPnP endpoint, without trailing path.
            timeout: Per-request timeout in seconds.
            http_session: Optional aiohttp session (for testing).
        """
        self.url = url.rstrip("/")
        self.timeout = timeout
        self._session = http_session
        self._owns_session = http_session is None

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, *args):
        await self.close()

    async def open(self) -> None:
        """Create the HTTP session unless one was injected."""
        if self._session is None:
            self._session = aiohttp.ClientSession()

    async def close(self) -> None:
        """Close the HTTP session if owned."""
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None

    async def get_wan_ipv4(self) -> ipaddress.IPv4Address:
        """Current external IPv4 address."""
        values = await self._call("GetExternalIPAddress", "NewExternalIPAddress")
        try:
            return ipaddress.IPv4Address(values["NewExternalIPAddress"])
        except ValueError as e:
            raise RouterError(f"Invalid IPv4 address from router: {e}") from e

    async def get_wan_ipv6(self) -> ipaddress.IPv6Address:
        """Current external IPv6 address."""
        values = await self._call(
            "X_AVM_DE_GetExternalIPv6Address", "NewExternalIPv6Address"
        )
        try:
            return ipaddress.IPv6Address(values["NewExternalIPv6Address"])
        except ValueError as e:
            raise RouterError(f"Invalid IPv6 address from router: {e}") from e

    async def get_ipv6_prefix(self) -> ipaddress.IPv6Network:
        """Currently delegated IPv6 prefix."""
        values = await self._call(
            "X_AVM_DE_GetIPv6Prefix", "NewIPv6Prefix", "NewPrefixLength"
        )
        try:
            return ipaddress.IPv6Network(
                f"{values['NewIPv6Prefix']}/{values['NewPrefixLength']}", strict=False
            )
        except ValueError as e:
            raise RouterError(f"Invalid IPv6 prefix from router: {e}") from e

    async def _call(self, action: str, *fields: str) -> dict[str, str]:
        """Invoke a SOAP action and read the named response fields.

        Raises:
            RouterError: On transport failure, non-200 status or a
                response without the fields.
        """
        if self._session is None:
            raise RuntimeError("Client not initialized - use async context manager")

        body = _ENVELOPE.format(action=action, service=SERVICE)
        headers = {
            "Content-Type": 'text/xml; charset="utf-8"',
            "SoapAction": f"{SERVICE}#{action}",
        }

        try:
            async with self._session.post(
                self.url + CONTROL_PATH,
                data=body,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise RouterError(f"{action} returned {resp.status}: {text[:100]}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RouterError(f"{action} failed: {e}") from e

        return _parse_fields(action, text, fields)


def _parse_fields(action: str, text: str, fields: tuple[str, ...]) -> dict[str, str]:
    try:
        root = ElementTree.fromstring(text)
    except ElementTree.ParseError as e:
        raise RouterError(f"{action} returned invalid XML: {e}") from e

    values: dict[str, str] = {}
    for element in root.iter():
        name = element.tag.rsplit("}", 1)[-1]
        if name in fields:
            values[name] = (element.text or "").strip()

    missing = [name for name in fields if not values.get(name)]
    if missing:
        raise RouterError(f"{action} response missing {', '.join(missing)}")
    return values
