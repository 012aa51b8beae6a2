"""HTTP request templates and their validation.

Templates come from the ``http_requests`` configuration section, one per
slot 1..9. Slots without a URL are skipped so entries can be commented
out without renumbering the rest.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)

MAX_SLOTS = 9

IPV4_ALIASES = ("<ipaddr>", "<ip4addr>", "<ipv4addr>", "<ipv4>")
IPV6_ALIASES = ("<ip6addr>", "<ipv6addr>", "<ipv6>")
USERNAME_ALIASES = ("<username>", "<user>")
PASSWORD_ALIASES = ("<passwd>", "<password>", "<pass>")

DEFAULT_METHOD = "GET"
DEFAULT_TIMEOUT = 5.0  # seconds
MIN_TIMEOUT = 1.0
MAX_TIMEOUT = 60.0
DEFAULT_RETRY_COUNT = 7
MIN_RETRY_COUNT = 0
MAX_RETRY_COUNT = 14

_TRUE_STRINGS = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE_STRINGS = {"0", "f", "F", "FALSE", "false", "False"}

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


@dataclass(frozen=True)
class DeliveryTemplate:
    """One configured HTTP request, immutable after startup."""

    index: int
    url: str
    method: str = DEFAULT_METHOD
    body: str = ""
    username: str = ""
    password: str = ""
    use_basic_auth: bool = False
    timeout: float = DEFAULT_TIMEOUT
    retry_count: int = DEFAULT_RETRY_COUNT
    headers: dict[str, str] = field(default_factory=dict)
    on_ipv4: bool = True
    on_ipv6: bool = False

    def applies_to(self, ipv4: bool) -> bool:
        """Whether an address of the given family is delivered to this template."""
        if ipv4:
            return self.on_ipv4
        return self.on_ipv6


def parse_duration(value: str) -> float:
    """Parse a Go-style duration string ("500ms", "5s", "1m30s") into seconds.

    Raises:
        ValueError: If the string is not a valid duration.
    """
    text = value.strip()
    sign = 1.0
    if text[:1] in ("+", "-"):
        if text[0] == "-":
            sign = -1.0
        text = text[1:]

    if text == "0":
        return 0.0
    if not text:
        raise ValueError(f"invalid duration {value!r}")

    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()

    if pos != len(text):
        raise ValueError(f"invalid duration {value!r}")
    return sign * total


def parse_bool(value: Any) -> bool:
    """Parse a boolean from YAML or from a strconv-style string.

    Raises:
        ValueError: If the value is not a recognised boolean.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        if value in _TRUE_STRINGS:
            return True
        if value in _FALSE_STRINGS:
            return False
    raise ValueError(f"invalid boolean {value!r}")


def contains_alias(aliases: tuple[str, ...], *texts: str) -> bool:
    """Whether any alias of the set occurs in any of the texts."""
    found = False
    for alias in aliases:
        for text in texts:
            found = found or alias in text
    return found


def _parse_timeout(index: int, value: Any) -> float:
    if value is None or value == "":
        return DEFAULT_TIMEOUT
    try:
        if isinstance(value, bool):
            raise ValueError(f"invalid duration {value!r}")
        if isinstance(value, (int, float)):
            timeout = float(value)
        else:
            timeout = parse_duration(str(value))
        if timeout < MIN_TIMEOUT or timeout > MAX_TIMEOUT:
            raise ValueError(
                f"value {timeout:g}s outside bounds [{MIN_TIMEOUT:g}s, {MAX_TIMEOUT:g}s]"
            )
    except ValueError as e:
        logger.warning(
            "Failed to parse http_requests.%d.timeout (%s), using default value %gs",
            index,
            e,
            DEFAULT_TIMEOUT,
        )
        return DEFAULT_TIMEOUT
    return timeout


def _parse_retry_count(index: int, value: Any) -> int:
    if value is None or value == "":
        return DEFAULT_RETRY_COUNT
    try:
        if isinstance(value, bool) or isinstance(value, float):
            raise ValueError(f"invalid integer {value!r}")
        retry_count = int(value)
        if retry_count < MIN_RETRY_COUNT or retry_count > MAX_RETRY_COUNT:
            raise ValueError(
                f"value {retry_count} outside bounds [{MIN_RETRY_COUNT}, {MAX_RETRY_COUNT}]"
            )
    except ValueError as e:
        logger.warning(
            "Failed to parse http_requests.%d.retry_count (%s), using default value %d",
            index,
            e,
            DEFAULT_RETRY_COUNT,
        )
        return DEFAULT_RETRY_COUNT
    return retry_count


def _parse_flag(index: int, name: str, value: Any, default: bool) -> bool:
    if value is None or value == "":
        return default
    try:
        return parse_bool(value)
    except ValueError as e:
        logger.warning(
            "Failed to parse http_requests.%d.%s (%s), using default value %s",
            index,
            name,
            e,
            default,
        )
        return default


def _parse_headers(index: int, data: Any) -> dict[str, str]:
    """Read header slots 1..9 of a template.

    Each slot is a mapping with ``key`` and ``value``. Later slots with the
    same key replace earlier ones.
    """
    if not data:
        return {}
    if not isinstance(data, Mapping):
        logger.warning("Ignoring http_requests.%d.headers: expected a mapping", index)
        return {}

    headers: dict[str, str] = {}
    for slot in range(1, MAX_SLOTS + 1):
        entry = _slot(data, slot)
        if not entry:
            continue
        if not isinstance(entry, Mapping) or not entry.get("key"):
            logger.warning(
                "Ignoring http_requests.%d.headers.%d: expected key and value",
                index,
                slot,
            )
            continue
        value = entry.get("value")
        headers[str(entry["key"])] = "" if value is None else str(value)
    return headers


def _slot(data: Mapping, slot: int) -> Any:
    """Look up a numbered slot whether YAML produced int or str keys."""
    if slot in data:
        return data[slot]
    return data.get(str(slot))


def build_template(index: int, data: Mapping[str, Any]) -> Optional[DeliveryTemplate]:
    """Validate one template slot.

    Malformed fields fall back to their defaults with a warning.

    Returns:
        The template, or None if the slot has no URL.
    """
    url = data.get("url")
    if not url:
        return None
    url = str(url)

    method = str(data.get("method") or DEFAULT_METHOD).upper()
    body = str(data.get("body") or "")
    username = str(data.get("username") or "")
    password = str(data.get("password") or "")

    use_basic_auth = _parse_flag(index, "basic_auth", data.get("basic_auth"), False)
    if use_basic_auth and (not username or not password):
        use_basic_auth = False

    on_ipv4 = _parse_flag(index, "on_ipv4", data.get("on_ipv4"), True)
    on_ipv6 = _parse_flag(index, "on_ipv6", data.get("on_ipv6"), False)
    if on_ipv6:
        on_ipv4 = False

    # Placeholders pin the template to the family they name
    if on_ipv4 or on_ipv6:
        if contains_alias(IPV4_ALIASES, url, body):
            on_ipv4, on_ipv6 = True, False
        elif contains_alias(IPV6_ALIASES, url, body):
            on_ipv4, on_ipv6 = False, True

    return DeliveryTemplate(
        index=index,
        url=url,
        method=method,
        body=body,
        username=username,
        password=password,
        use_basic_auth=use_basic_auth,
        timeout=_parse_timeout(index, data.get("timeout")),
        retry_count=_parse_retry_count(index, data.get("retry_count")),
        headers=_parse_headers(index, data.get("headers")),
        on_ipv4=on_ipv4,
        on_ipv6=on_ipv6,
    )


def build_templates(data: Optional[Mapping[Any, Any]]) -> tuple[DeliveryTemplate, ...]:
    """Build the template list from the ``http_requests`` section.

    Args:
        data: Mapping of slot number (1..9) to template settings.

    Returns:
        Templates in slot order.
    """
    if not data:
        return ()
    if not isinstance(data, Mapping):
        logger.warning("Ignoring http_requests: expected a mapping of slots 1..%d", MAX_SLOTS)
        return ()

    templates = []
    for index in range(1, MAX_SLOTS + 1):
        entry = _slot(data, index)
        if not entry:
            continue
        if not isinstance(entry, Mapping):
            logger.warning("Ignoring http_requests.%d: expected a mapping", index)
            continue
        template = build_template(index, entry)
        if template is not None:
            templates.append(template)

    for key in data:
        if str(key) not in {str(i) for i in range(1, MAX_SLOTS + 1)}:
            logger.warning(
                "Ignoring http_requests.%s: slots must be numbered 1..%d", key, MAX_SLOTS
            )

    return tuple(templates)
