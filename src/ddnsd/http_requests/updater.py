"""Destination that runs every configured HTTP request for an address."""

import asyncio
import logging
from typing import Optional, Sequence

import aiohttp

from ddnsd.address import Address
from ddnsd.updater import Updater

from .request import DeliveryResult, PreparedRequest, RequestExecutor, prepare_request
from .templates import DeliveryTemplate

logger = logging.getLogger(__name__)


class HttpRequestsUpdater(Updater):
    """Runs the configured HTTP requests concurrently for each address.

    The batch for an address completes only when every request has
    reached a terminal result. Results are logged and then discarded.
    """

    LOG_BODY_LIMIT = 200  # bytes of response body shown in logs

    name = "http_requests"

    def __init__(
        self,
        templates: Sequence[DeliveryTemplate],
        http_session: Optional[aiohttp.ClientSession] = None,
    ):
        """Initialize updater.

        Args:
            templates: Validated request templates.
            http_session: Optional aiohttp session (for testing).
        """
        super().__init__()
        self._templates = tuple(templates)
        self._session = http_session
        self._owns_session = http_session is None
        self._executor: Optional[RequestExecutor] = None
        if http_session is not None:
            self._executor = RequestExecutor(http_session)

    @property
    def templates(self) -> tuple[DeliveryTemplate, ...]:
        """The configured templates."""
        return self._templates

    @property
    def is_initialized(self) -> bool:
        return bool(self._templates)

    async def start(self) -> bool:
        if not self.is_initialized:
            logger.info("No HTTP requests configured, disabling HTTP request updates")
            return False
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._executor = RequestExecutor(self._session)
        return await super().start()

    async def stop(self) -> None:
        await super().stop()
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None
            self._executor = None

    async def update(self, address: Address) -> list[DeliveryResult]:
        """Run every applicable request for an address.

        Returns:
            One result per request that applied, in template order.
        """
        if self._executor is None:
            raise RuntimeError("Updater not started - call start() first")

        logger.info("Received update request for %s, executing all HTTP requests", address)

        requests = []
        for template in self._templates:
            request = prepare_request(template, address)
            if request is None:
                continue
            logger.info(
                "HTTP request %d: %s %s [%s]",
                request.index,
                request.method,
                request.url_for_log,
                request.body_for_log,
            )
            requests.append(request)

        if not requests:
            logger.debug("No HTTP request applies to %s", address)
            return []

        results = await asyncio.gather(
            *(self._executor.execute(request) for request in requests)
        )

        for request, result in zip(requests, results):
            self._log_result(request, result)

        return list(results)

    def _log_result(self, request: PreparedRequest, result: DeliveryResult) -> None:
        if result.ok:
            text = result.body[: self.LOG_BODY_LIMIT].decode("utf-8", errors="replace")
            logger.info(
                "HTTP request %d result: [%s] %s",
                result.request_index,
                result.status,
                request.redact(text),
            )
        elif result.status:
            logger.error(
                "HTTP request %d failed: [%s] %s",
                result.request_index,
                result.status,
                result.error,
            )
        else:
            logger.error("HTTP request %d failed: %s", result.request_index, result.error)
