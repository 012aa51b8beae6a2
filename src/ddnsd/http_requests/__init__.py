"""User-defined HTTP requests triggered by address changes."""

from .request import DeliveryResult, PreparedRequest, RequestExecutor, prepare_request
from .templates import (
    IPV4_ALIASES,
    IPV6_ALIASES,
    PASSWORD_ALIASES,
    USERNAME_ALIASES,
    DeliveryTemplate,
    build_templates,
)
from .updater import HttpRequestsUpdater

__all__ = [
    "DeliveryResult",
    "DeliveryTemplate",
    "HttpRequestsUpdater",
    "PreparedRequest",
    "RequestExecutor",
    "build_templates",
    "prepare_request",
    "IPV4_ALIASES",
    "IPV6_ALIASES",
    "USERNAME_ALIASES",
    "PASSWORD_ALIASES",
]
