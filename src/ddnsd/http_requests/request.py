"""Placeholder substitution and retrying execution of HTTP requests."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import quote, quote_plus

import aiohttp

from ddnsd.address import Address, is_ipv4
from ddnsd.errors import DeliveryError

from .templates import (
    IPV4_ALIASES,
    IPV6_ALIASES,
    PASSWORD_ALIASES,
    USERNAME_ALIASES,
    DeliveryTemplate,
)

logger = logging.getLogger(__name__)

RETRY_AFTER_STATUSES = (429, 503)


@dataclass(frozen=True)
class DeliveryResult:
    """Terminal outcome of one HTTP request."""

    request_index: int
    status: str = ""
    body: bytes = b""
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        """Whether the request succeeded."""
        return self.error is None


@dataclass(frozen=True)
class PreparedRequest:
    """A template resolved for one address.

    ``url_for_log`` and ``body_for_log`` hold the address but not the
    credentials and are the only forms that may be logged.
    """

    index: int
    method: str
    url: str
    body: str
    url_for_log: str
    body_for_log: str
    timeout: float
    retry_count: int
    headers: dict[str, str] = field(default_factory=dict)
    auth: Optional[aiohttp.BasicAuth] = None
    secrets: tuple[tuple[str, str], ...] = ()  # (credential form, placeholder)

    def redact(self, text: str) -> str:
        """Replace the resolved URL, body and credentials in text.

        aiohttp reports URLs in normalized, percent-encoded form, so every
        encoding of the username and password is scrubbed as well.
        """
        if self.url and self.url != self.url_for_log:
            text = text.replace(self.url, self.url_for_log)
        if self.body and self.body != self.body_for_log:
            text = text.replace(self.body, self.body_for_log)
        for secret, placeholder in self.secrets:
            text = text.replace(secret, placeholder)
        return text


def credential_forms(value: str, placeholder: str) -> list[tuple[str, str]]:
    """Plain and percent-encoded forms of a credential, mapped to a placeholder."""
    if not value:
        return []
    forms = dict.fromkeys(
        (
            value,
            quote(value),
            quote(value, safe=""),
            quote_plus(value),
            quote_plus(value, safe=""),
        )
    )
    return [(form, placeholder) for form in forms]


def substitute(text: str, aliases: tuple[str, ...], value: str) -> str:
    """Replace every alias token in text with value."""
    for alias in aliases:
        text = text.replace(alias, value)
    return text


def prepare_request(
    template: DeliveryTemplate, address: Address
) -> Optional[PreparedRequest]:
    """Resolve a template for an address.

    Returns:
        The request, or None if the template does not apply to the
        address family.
    """
    ipv4 = is_ipv4(address)
    if not template.applies_to(ipv4):
        return None

    aliases = IPV4_ALIASES if ipv4 else IPV6_ALIASES
    url = substitute(template.url, aliases, str(address))
    body = substitute(template.body, aliases, str(address))

    url_for_log = url
    body_for_log = body

    url = substitute(url, USERNAME_ALIASES, template.username)
    body = substitute(body, USERNAME_ALIASES, template.username)
    url = substitute(url, PASSWORD_ALIASES, template.password)
    body = substitute(body, PASSWORD_ALIASES, template.password)

    auth = None
    if template.use_basic_auth and template.username and template.password:
        auth = aiohttp.BasicAuth(template.username, template.password)

    secrets = credential_forms(template.password, PASSWORD_ALIASES[0])
    secrets += credential_forms(template.username, USERNAME_ALIASES[0])
    secrets.sort(key=lambda pair: len(pair[0]), reverse=True)

    return PreparedRequest(
        index=template.index,
        method=template.method,
        url=url,
        body=body,
        url_for_log=url_for_log,
        body_for_log=body_for_log,
        timeout=template.timeout,
        retry_count=template.retry_count,
        headers=dict(template.headers),
        auth=auth,
        secrets=tuple(secrets),
    )


def status_label(resp: aiohttp.ClientResponse) -> str:
    """Status line text such as "200 OK"."""
    if resp.reason:
        return f"{resp.status} {resp.reason}"
    return str(resp.status)


def retry_after(resp: aiohttp.ClientResponse) -> Optional[float]:
    """Seconds requested by a 429 / 503 Retry-After header, if any."""
    if resp.status not in RETRY_AFTER_STATUSES:
        return None
    value = resp.headers.get(aiohttp.hdrs.RETRY_AFTER, "").strip()
    if not value.isdigit():
        return None
    return float(value)


class RequestExecutor:
    """Executes prepared requests with retry and exponential backoff.

    Features:
    - Retries transport failures and non-2xx responses
    - Backoff doubles from RETRY_WAIT_MIN up to RETRY_WAIT_MAX
    - A Retry-After header on 429 / 503 replaces the backoff, capped at
      RETRY_WAIT_MAX
    - Errors raised before anything is sent (bad URL, conflicting auth)
      are not retried
    - The request timeout applies to each attempt separately
    - Always returns a DeliveryResult, never raises
    """

    RETRY_WAIT_MIN = 1.0  # seconds
    RETRY_WAIT_MAX = 30.0  # seconds

    def __init__(self, http_session: aiohttp.ClientSession):
        """Initialize executor.

        Args:
            http_session: Session used for all attempts.
        """
        self._session = http_session

    def backoff(self, attempt: int, requested: Optional[float] = None) -> float:
        """Wait before the retry that follows the given 0-based attempt."""
        if requested is not None:
            return min(requested, self.RETRY_WAIT_MAX)
        return min(self.RETRY_WAIT_MIN * (2**attempt), self.RETRY_WAIT_MAX)

    async def execute(self, request: PreparedRequest) -> DeliveryResult:
        """Run a request until it succeeds or its retries are used up.

        Args:
            request: Request to run.

        Returns:
            Result carrying whichever of status, body and error are known.
        """
        attempts = request.retry_count + 1
        status = ""
        body = b""
        last_error = ""

        for attempt in range(attempts):
            requested = None
            try:
                status, code, body, requested = await self._try_request(request)
                if 200 <= code < 300:
                    return DeliveryResult(request.index, status, body)
                last_error = f"unexpected status {status}"
            except aiohttp.InvalidURL as e:
                return DeliveryResult(
                    request.index,
                    error=DeliveryError(request.redact(f"invalid URL: {e}")),
                )
            except asyncio.CancelledError:
                raise
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                status = ""
                body = b""
                last_error = request.redact(str(e) or type(e).__name__)
            except Exception as e:
                return DeliveryResult(
                    request.index,
                    error=DeliveryError(
                        request.redact(
                            f"{request.method} {request.url_for_log} cannot be sent: "
                            f"{str(e) or type(e).__name__}"
                        )
                    ),
                )

            logger.debug(
                "HTTP request %d attempt %d/%d failed: %s",
                request.index,
                attempt + 1,
                attempts,
                last_error,
            )

            if attempt < attempts - 1:
                delay = self.backoff(attempt, requested)
                logger.debug("HTTP request %d retrying in %.1fs", request.index, delay)
                await asyncio.sleep(delay)

        error = DeliveryError(
            f"{request.method} {request.url_for_log} giving up after "
            f"{attempts} attempt(s): {last_error}"
        )
        return DeliveryResult(request.index, status, body, error)

    async def _try_request(
        self, request: PreparedRequest
    ) -> tuple[str, int, bytes, Optional[float]]:
        """Single attempt.

        Returns:
            (status label, status code, response body, Retry-After seconds)
        """
        async with self._session.request(
            request.method,
            request.url,
            data=request.body.encode() if request.body else None,
            headers=request.headers,
            auth=request.auth,
            timeout=aiohttp.ClientTimeout(total=request.timeout),
        ) as resp:
            body = await resp.read()
            return status_label(resp), resp.status, body, retry_after(resp)
