"""Cloudflare DNS provider destination."""

from .updater import CloudflareUpdater

__all__ = ["CloudflareUpdater"]
