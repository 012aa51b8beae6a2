"""ddnsd - keeps DNS records and HTTP callbacks in sync with the public IP."""

__version__ = "0.1.0"
