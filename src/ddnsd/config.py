"""Configuration management for ddnsd."""

import ipaddress
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable
from urllib.parse import urlsplit

import yaml

from ddnsd.errors import ConfigError
from ddnsd.http_requests.templates import (
    DeliveryTemplate,
    build_templates,
    parse_bool,
    parse_duration,
)

logger = logging.getLogger(__name__)


@dataclass
class RouterConfig:
    """Router polling configuration."""

    url: str | None = None  # polling disabled when unset
    timeout: float = 10.0  # seconds
    interval: float | None = None  # polling disabled when unset

    @property
    def enabled(self) -> bool:
        return bool(self.url) and self.interval is not None


@dataclass
class PushServerConfig:
    """DynDNS push endpoint configuration."""

    bind: str | None = None  # "host:port", endpoint disabled when unset
    username: str = ""
    password: str = ""
    basic_auth: bool = False

    @property
    def enabled(self) -> bool:
        return bool(self.bind)

    @property
    def host(self) -> str:
        return split_bind(self.bind or "")[0]

    @property
    def port(self) -> int:
        return split_bind(self.bind or "")[1]


@dataclass
class CloudflareConfig:
    """Cloudflare API configuration."""

    api_token: str = ""
    api_email: str = ""
    api_key: str = ""
    zones_ipv4: list[str] = field(default_factory=list)
    zones_ipv6: list[str] = field(default_factory=list)


@dataclass
class Config:
    """Daemon configuration."""

    log_level: str = "INFO"
    log_file: str | None = None
    local_address_ipv6: ipaddress.IPv6Address | None = None
    router: RouterConfig = field(default_factory=RouterConfig)
    push_server: PushServerConfig = field(default_factory=PushServerConfig)
    cloudflare: CloudflareConfig = field(default_factory=CloudflareConfig)
    http_requests: tuple[DeliveryTemplate, ...] = ()


def get_config_path(custom_path: Path | None = None) -> Path:
    """Get the configuration file path.

    Args:
        custom_path: Override path. If None, returns default.

    Returns:
        Path to config file.
    """
    if custom_path is not None:
        return custom_path
    return Path.home() / ".config" / "ddnsd" / "config.yaml"


def _default_file_reader(path: Path) -> dict[str, Any] | None:
    """Default file reader that loads YAML from disk."""
    if not path.exists():
        return None
    try:
        content = path.read_text()
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e
    if not content.strip():
        return None
    try:
        return yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e


def split_bind(bind: str) -> tuple[str, int]:
    """Split a "host:port" bind address. An empty host means all interfaces.

    Raises:
        ConfigError: If the port is missing or invalid.
    """
    host, sep, port_text = bind.rpartition(":")
    if not sep:
        raise ConfigError(f"Invalid bind address {bind!r}: expected host:port")
    try:
        port = int(port_text)
    except ValueError:
        raise ConfigError(f"Invalid port in bind address {bind!r}") from None
    if not 0 <= port <= 65535:
        raise ConfigError(f"Invalid port in bind address {bind!r}")
    host = host.strip("[]") or "0.0.0.0"
    return host, port


def _parse_seconds(section: str, value: Any, default: float | None) -> float | None:
    if value is None or value == "":
        return default
    try:
        if isinstance(value, bool):
            raise ValueError(f"invalid duration {value!r}")
        if isinstance(value, (int, float)):
            seconds = float(value)
        else:
            seconds = parse_duration(str(value))
        if seconds <= 0:
            raise ValueError(f"duration {value!r} must be positive")
    except ValueError as e:
        logger.warning("Failed to parse %s (%s), using defaults", section, e)
        return default
    return seconds


def _parse_router(data: dict[str, Any]) -> RouterConfig:
    url = data.get("url")
    if url:
        parts = urlsplit(str(url))
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ConfigError(f"Failed to parse router.url {url!r}")
        url = str(url).rstrip("/")
    else:
        logger.info("router.url not set, disabling router polling")

    interval = None
    if data.get("interval") is None:
        if url:
            logger.info("router.interval not set, disabling router polling")
    else:
        interval = _parse_seconds("router.interval", data["interval"], 300.0)

    return RouterConfig(
        url=url or None,
        timeout=_parse_seconds(
            "router.timeout", data.get("timeout"), RouterConfig.timeout
        ),
        interval=interval,
    )


def _parse_push_server(data: dict[str, Any]) -> PushServerConfig:
    bind = data.get("bind")
    if bind:
        split_bind(str(bind))
    else:
        logger.info("push_server.bind not set, disabling DynDNS push server")

    username = str(data.get("username") or "")
    password = str(data.get("password") or "")
    try:
        basic_auth = parse_bool(data.get("basic_auth", False))
    except ValueError as e:
        logger.warning("Failed to parse push_server.basic_auth (%s), using default false", e)
        basic_auth = False
    if basic_auth and (not username or not password):
        logger.warning("push_server.basic_auth needs username and password, disabling it")
        basic_auth = False

    return PushServerConfig(
        bind=str(bind) if bind else None,
        username=username,
        password=password,
        basic_auth=basic_auth,
    )


def _parse_zones(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [zone.strip() for zone in value.split(",") if zone.strip()]
    return [str(zone).strip() for zone in value if str(zone).strip()]


def _parse_cloudflare(data: dict[str, Any]) -> CloudflareConfig:
    return CloudflareConfig(
        api_token=str(data.get("api_token") or ""),
        api_email=str(data.get("api_email") or ""),
        api_key=str(data.get("api_key") or ""),
        zones_ipv4=_parse_zones(data.get("zones_ipv4")),
        zones_ipv6=_parse_zones(data.get("zones_ipv6")),
    )


def _parse_interface_id(value: Any) -> ipaddress.IPv6Address | None:
    if not value:
        return None
    try:
        interface_id = ipaddress.IPv6Address(str(value))
    except ValueError as e:
        raise ConfigError(f"Failed to parse local_address_ipv6: {e}") from e
    logger.info("Using the IPv6 prefix to construct the IPv6 address")
    return interface_id


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"Section {name} must be a mapping")
    return value


def load_config(
    path: Path | None = None,
    file_reader: Callable[[Path], dict[str, Any] | None] | None = None,
) -> Config:
    """Load configuration from file.

    Args:
        path: Path to config file. If None, uses default path.
        file_reader: Injectable file reader for testing.

    Returns:
        Config object with values from file or defaults.

    Raises:
        ConfigError: If a value required to start is unusable.
    """
    config_path = get_config_path(path)
    reader = file_reader or _default_file_reader

    data = reader(config_path)

    if data is None:
        return Config()
    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a mapping")

    return Config(
        log_level=str(data.get("log_level", Config.log_level)),
        log_file=data.get("log_file", Config.log_file),
        local_address_ipv6=_parse_interface_id(data.get("local_address_ipv6")),
        router=_parse_router(_section(data, "router")),
        push_server=_parse_push_server(_section(data, "push_server")),
        cloudflare=_parse_cloudflare(_section(data, "cloudflare")),
        http_requests=build_templates(data.get("http_requests")),
    )


def describe(config: Config) -> list[str]:
    """Summarize the configuration without credentials."""
    push_server = config.push_server.bind if config.push_server.enabled else "disabled"
    lines = [
        f"router polling: {'enabled' if config.router.enabled else 'disabled'}",
        f"push server: {push_server}",
        f"interface identifier: {config.local_address_ipv6 or 'not set'}",
        f"cloudflare A records: {', '.join(config.cloudflare.zones_ipv4) or 'none'}",
        f"cloudflare AAAA records: {', '.join(config.cloudflare.zones_ipv6) or 'none'}",
        f"http requests: {len(config.http_requests)}",
    ]
    for template in config.http_requests:
        family = "ipv4" if template.on_ipv4 else "ipv6" if template.on_ipv6 else "never"
        lines.append(
            f"  {template.index}: {template.method} {template.url} "
            f"[{family}, timeout={template.timeout:g}s, retries={template.retry_count}]"
        )
    return lines
