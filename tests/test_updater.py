"""Tests for the queue-fed updater base class."""

import asyncio
import ipaddress
import logging

import pytest

from ddnsd.updater import Updater

FIRST = ipaddress.IPv4Address("192.0.2.1")
SECOND = ipaddress.IPv4Address("192.0.2.2")


class GatedUpdater(Updater):
    """Updater whose deliveries block until released."""

    name = "gated"

    def __init__(self, fail_on=()):
        super().__init__()
        self.events: list[str] = []
        self.release = asyncio.Event()
        self.fail_on = set(fail_on)

    @property
    def is_initialized(self) -> bool:
        return True

    async def update(self, address):
        self.events.append(f"start {address}")
        await self.release.wait()
        if address in self.fail_on:
            raise RuntimeError(f"cannot deliver {address}")
        self.events.append(f"end {address}")


class TestUpdaterStart:
    """Tests for starting and stopping."""

    @pytest.mark.asyncio
    async def test_uninitialized_does_not_start(self, caplog):
        updater = Updater()

        with caplog.at_level(logging.INFO):
            assert await updater.start() is False

        assert updater.is_running is False
        assert "not initialized" in caplog.text

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        updater = GatedUpdater()

        assert await updater.start() is True
        task = updater._task
        assert await updater.start() is True
        assert updater._task is task

        await updater.stop()
        assert updater.is_running is False

    @pytest.mark.asyncio
    async def test_base_update_not_implemented(self):
        with pytest.raises(NotImplementedError):
            await Updater().update(FIRST)


class TestUpdaterOrdering:
    """Tests for per-destination serialization."""

    @pytest.mark.asyncio
    async def test_next_batch_waits_for_previous(self):
        """The second address is not started while the first is in flight."""
        updater = GatedUpdater()
        await updater.start()

        await updater.submit(FIRST)
        await updater.submit(SECOND)
        await asyncio.sleep(0.01)

        assert updater.events == ["start 192.0.2.1"]

        updater.release.set()
        await asyncio.wait_for(updater.join(), timeout=1.0)

        assert updater.events == [
            "start 192.0.2.1",
            "end 192.0.2.1",
            "start 192.0.2.2",
            "end 192.0.2.2",
        ]
        await updater.stop()

    @pytest.mark.asyncio
    async def test_worker_survives_failure(self, caplog):
        updater = GatedUpdater(fail_on={FIRST})
        updater.release.set()
        await updater.start()

        with caplog.at_level(logging.ERROR):
            await updater.submit(FIRST)
            await updater.submit(SECOND)
            await asyncio.wait_for(updater.join(), timeout=1.0)

        assert updater.events == ["start 192.0.2.1", "start 192.0.2.2", "end 192.0.2.2"]
        assert updater.is_running is True
        assert "Updater gated failed to process 192.0.2.1" in caplog.text
        await updater.stop()


class TestUpdaterQueue:
    """Tests for the bounded queue."""

    @pytest.mark.asyncio
    async def test_submit_blocks_when_full(self):
        """A full queue holds the submitter back instead of dropping."""
        updater = GatedUpdater()

        for i in range(Updater.QUEUE_SIZE):
            await updater.submit(ipaddress.IPv4Address(f"192.0.2.{i + 10}"))
        assert updater.pending == Updater.QUEUE_SIZE

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(updater.submit(FIRST), timeout=0.05)

        assert updater.pending == Updater.QUEUE_SIZE

    @pytest.mark.asyncio
    async def test_blocked_submit_resumes_when_drained(self):
        updater = GatedUpdater()
        updater.release.set()
        for i in range(Updater.QUEUE_SIZE):
            await updater.submit(ipaddress.IPv4Address(f"192.0.2.{i + 10}"))

        blocked = asyncio.create_task(updater.submit(FIRST))
        await asyncio.sleep(0.01)
        assert not blocked.done()

        await updater.start()
        await asyncio.wait_for(blocked, timeout=1.0)
        await asyncio.wait_for(updater.join(), timeout=1.0)

        assert updater.events[-1] == "end 192.0.2.1"
        assert len(updater.events) == 2 * (Updater.QUEUE_SIZE + 1)
        await updater.stop()
