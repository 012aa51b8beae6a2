"""Cloudflare DNS record updates."""

import asyncio
import logging
from typing import Any, Optional, Sequence

import aiohttp

from ddnsd.address import Address, is_ipv4
from ddnsd.errors import CloudflareError
from ddnsd.updater import Updater

logger = logging.getLogger(__name__)


class CloudflareUpdater(Updater):
    """Points A / AAAA records at the current address.

    For each configured record name the zone is the one whose name is the
    longest suffix of the record name. Records that already hold the
    address are left alone; missing records are reported, not created.
    """

    API_BASE = "https://api.cloudflare.com/client/v4"
    REQUEST_TIMEOUT = 10.0  # seconds
    ZONES_PER_PAGE = 50

    name = "cloudflare"

    def __init__(
        self,
        api_token: str = "",
        api_email: str = "",
        api_key: str = "",
        ipv4_zones: Sequence[str] = (),
        ipv6_zones: Sequence[str] = (),
        http_session: Optional[aiohttp.ClientSession] = None,
    ):
        """Initialize updater.

        Args:
            api_token: Scoped API token (preferred).
            api_email: Account email for the deprecated global API key.
            api_key: Deprecated global API key.
            ipv4_zones: Record names updated with IPv4 addresses (A).
            ipv6_zones: Record names updated with IPv6 addresses (AAAA).
            http_session: Optional aiohttp session (for testing).
        """
        super().__init__()
        self._api_token = api_token
        self._api_email = api_email
        self._api_key = api_key
        self._ipv4_zones = tuple(ipv4_zones)
        self._ipv6_zones = tuple(ipv6_zones)
        self._session = http_session
        self._owns_session = http_session is None
        self._zone_ids: dict[str, str] = {}

    @property
    def has_credentials(self) -> bool:
        """Whether a token or an email/key pair is configured."""
        return bool(self._api_token or (self._api_email and self._api_key))

    @property
    def is_initialized(self) -> bool:
        return self.has_credentials and bool(self._ipv4_zones or self._ipv6_zones)

    async def start(self) -> bool:
        if not self.has_credentials:
            logger.info("Cloudflare credentials not configured, disabling Cloudflare updates")
            return False
        if not self._ipv4_zones and not self._ipv6_zones:
            logger.warning("No Cloudflare zones configured, disabling Cloudflare updates")
            return False
        if not self._api_token:
            logger.warning("Using deprecated credentials via the API key")
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return await super().start()

    async def stop(self) -> None:
        await super().stop()
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None

    async def update(self, address: Address) -> list[bool]:
        """Update every record of the address family.

        Returns:
            Per record name, whether it now holds the address.
        """
        if is_ipv4(address):
            names, record_type = self._ipv4_zones, "A"
        else:
            names, record_type = self._ipv6_zones, "AAAA"

        if not names:
            logger.debug("No Cloudflare %s records configured for %s", record_type, address)
            return []

        logger.info("Received update request for %s, updating %s records", address, record_type)
        results = await asyncio.gather(
            *(self._update_name(name, record_type, str(address)) for name in names)
        )
        return list(results)

    async def _update_name(self, name: str, record_type: str, content: str) -> bool:
        try:
            zone_id = await self._find_zone_id(name)
            records = await self._request(
                "GET",
                f"/zones/{zone_id}/dns_records",
                params={"type": record_type, "name": name},
            )
            if not records:
                logger.warning("No %s record found for %s", record_type, name)
                return False
            if not isinstance(records, list):
                raise CloudflareError(f"Unexpected dns_records result for {name}")

            updated = True
            for record in records:
                if not isinstance(record, dict) or not record.get("id"):
                    logger.warning("Skipping %s record %s without id", record_type, name)
                    updated = False
                    continue
                if record.get("content") == content:
                    logger.info("%s record %s already up to date", record_type, name)
                    continue
                await self._request(
                    "PATCH",
                    f"/zones/{zone_id}/dns_records/{record['id']}",
                    json={"content": content},
                )
                logger.info("Updated %s record %s to %s", record_type, name, content)
            return updated
        except CloudflareError as e:
            logger.error("Failed to update %s record %s: %s", record_type, name, e)
            return False

    async def _find_zone_id(self, name: str) -> str:
        if name in self._zone_ids:
            return self._zone_ids[name]

        best: Optional[dict[str, Any]] = None
        page = 1
        while True:
            zones, info = await self._request_page(
                "/zones", params={"page": page, "per_page": self.ZONES_PER_PAGE}
            )
            for zone in zones or []:
                if not isinstance(zone, dict) or not zone.get("id"):
                    continue
                zone_name = zone.get("name") or ""
                if not zone_name:
                    continue
                if name == zone_name or name.endswith("." + zone_name):
                    if best is None or len(zone_name) > len(best["name"]):
                        best = zone
            total_pages = info.get("total_pages")
            if not isinstance(total_pages, int) or page >= total_pages:
                break
            page += 1

        if best is None:
            raise CloudflareError(f"No zone found for {name}")

        self._zone_ids[name] = best["id"]
        return best["id"]

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        result, _ = await self._request_page(path, method=method, **kwargs)
        return result

    async def _request_page(
        self, path: str, method: str = "GET", **kwargs: Any
    ) -> tuple[Any, dict[str, Any]]:
        """Call the API and unwrap its envelope.

        Returns:
            (result, result_info)

        Raises:
            CloudflareError: On transport failure or an unsuccessful reply.
        """
        if self._session is None:
            raise RuntimeError("Updater not started - call start() first")

        try:
            async with self._session.request(
                method,
                self.API_BASE + path,
                headers=self._auth_headers(),
                timeout=aiohttp.ClientTimeout(total=self.REQUEST_TIMEOUT),
                **kwargs,
            ) as resp:
                data = await resp.json(content_type=None)
                status = resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise CloudflareError(f"{method} {path} failed: {e}") from e

        if not isinstance(data, dict) or not data.get("success"):
            errors = data.get("errors") if isinstance(data, dict) else None
            messages = ", ".join(
                str(err.get("message", err)) for err in errors or [] if isinstance(err, dict)
            )
            raise CloudflareError(f"{method} {path} returned {status}: {messages or data}")

        info = data.get("result_info")
        return data.get("result"), info if isinstance(info, dict) else {}

    def _auth_headers(self) -> dict[str, str]:
        if self._api_token:
            return {"Authorization": f"Bearer {self._api_token}"}
        return {"X-Auth-Email": self._api_email, "X-Auth-Key": self._api_key}
