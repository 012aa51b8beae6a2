"""Router polling.

Queries the router for its WAN addresses on a timer and forwards every
change to the dispatcher.
"""

from .fritzbox import FritzBox
from .monitor import RouterClient, RouterPoller

__all__ = ["FritzBox", "RouterClient", "RouterPoller"]
