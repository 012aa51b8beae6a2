"""Tests for the change dispatcher."""

import asyncio
import ipaddress

import pytest

from ddnsd.dispatcher import ChangeDispatcher
from ddnsd.updater import Updater

IPV4 = ipaddress.IPv4Address("192.0.2.1")
IPV6 = ipaddress.IPv6Address("2001:db8::1")


class RecordingUpdater(Updater):
    """Updater that records submissions without a worker."""

    def __init__(self, name: str, log: list):
        super().__init__()
        self.name = name
        self._log = log

    @property
    def is_initialized(self) -> bool:
        return True

    async def submit(self, address):
        self._log.append((self.name, address))
        await super().submit(address)


class BlockingUpdater(Updater):
    """Updater whose deliveries never finish."""

    name = "blocking"

    def __init__(self):
        super().__init__()
        self.started = asyncio.Event()

    @property
    def is_initialized(self) -> bool:
        return True

    async def update(self, address):
        self.started.set()
        await asyncio.Event().wait()


class TestChangeDispatcher:
    """Tests for broadcasting addresses."""

    def test_register_keeps_order(self):
        log: list = []
        first = RecordingUpdater("first", log)
        second = RecordingUpdater("second", log)

        dispatcher = ChangeDispatcher([first])
        dispatcher.register(second)

        assert dispatcher.updaters == (first, second)

    @pytest.mark.asyncio
    async def test_dispatch_reaches_every_updater_in_order(self):
        log: list = []
        dispatcher = ChangeDispatcher(
            [RecordingUpdater("cloudflare", log), RecordingUpdater("http_requests", log)]
        )

        await dispatcher.dispatch(IPV4)
        await dispatcher.dispatch(IPV6)

        assert log == [
            ("cloudflare", IPV4),
            ("http_requests", IPV4),
            ("cloudflare", IPV6),
            ("http_requests", IPV6),
        ]

    @pytest.mark.asyncio
    async def test_dispatch_with_no_updaters(self):
        dispatcher = ChangeDispatcher()

        await dispatcher.dispatch(IPV4)

    @pytest.mark.asyncio
    async def test_inbox_is_drained_by_loop(self):
        log: list = []
        updater = RecordingUpdater("only", log)
        dispatcher = ChangeDispatcher([updater])
        await dispatcher.start()

        await dispatcher.inbox.put(IPV4)
        await asyncio.wait_for(dispatcher.inbox.join(), timeout=1.0)

        assert log == [("only", IPV4)]
        assert updater.pending == 1
        await dispatcher.stop()
        assert dispatcher.is_running is False

    @pytest.mark.asyncio
    async def test_does_not_wait_for_deliveries(self):
        """A slow destination does not hold up the next broadcast."""
        slow = BlockingUpdater()
        log: list = []
        other = RecordingUpdater("other", log)
        await slow.start()
        dispatcher = ChangeDispatcher([slow, other])

        await asyncio.wait_for(dispatcher.dispatch(IPV4), timeout=1.0)
        await asyncio.wait_for(slow.started.wait(), timeout=1.0)
        await asyncio.wait_for(dispatcher.dispatch(IPV6), timeout=1.0)

        assert log == [("other", IPV4), ("other", IPV6)]
        assert slow.pending == 1
        await slow.stop()
