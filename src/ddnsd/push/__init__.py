"""Push endpoint for routers reporting their own addresses."""

from .server import PushServer, credentials_match

__all__ = ["PushServer", "credentials_match"]
