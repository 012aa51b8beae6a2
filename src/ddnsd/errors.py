"""Base exceptions for ddnsd."""


class DdnsError(Exception):
    """Base exception for all ddnsd errors."""

    pass


class ConfigError(DdnsError):
    """Configuration cannot be used to start the daemon."""

    pass


class DeliveryError(DdnsError):
    """HTTP delivery to a destination failed."""

    pass


class RouterError(DdnsError):
    """Router query failed."""

    pass


class CloudflareError(DdnsError):
    """Cloudflare API call failed."""

    pass
