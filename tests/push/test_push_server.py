"""Tests for the DynDNS push endpoint."""

import asyncio
import ipaddress
import logging

import pytest
from aiohttp import BasicAuth

from ddnsd.push import PushServer, credentials_match
from ddnsd.push.server import REALM


def drain(queue: asyncio.Queue) -> list:
    items = []
    while not queue.empty():
        items.append(queue.get_nowait())
    return items


@pytest.fixture
def queue():
    return asyncio.Queue()


class TestCredentialsMatch:
    """Tests for credential comparison."""

    def test_match(self):
        assert credentials_match("user", "pass", "user", "pass")

    def test_empty_matches_empty(self):
        assert credentials_match("", "", "", "")

    @pytest.mark.parametrize(
        "username,password",
        [
            ("user", "wrong"),
            ("wrong", "pass"),
            ("", ""),
            ("user", ""),
            ("usex", "pass"),
            ("xser", "pass"),
            ("user", "pasx"),
            ("user", "xass"),
            ("user", "pass "),
        ],
    )
    def test_mismatch(self, username, password):
        """Any difference in either field is rejected."""
        assert not credentials_match(username, password, "user", "pass")

    def test_non_ascii(self):
        assert credentials_match("jürgen", "pässword", "jürgen", "pässword")
        assert not credentials_match("jürgen", "password", "jürgen", "pässword")


class TestPushServerBasicAuth:
    """Tests for Basic-auth mode."""

    @pytest.mark.asyncio
    async def test_valid_credentials_forward_ipv4(self, aiohttp_client, queue):
        server = PushServer(queue, username="user", password="pass", basic_auth=True)
        client = await aiohttp_client(server.app)

        resp = await client.get(
            "/ip", params={"v4": "1.2.3.4"}, auth=BasicAuth("user", "pass")
        )

        assert resp.status == 200
        assert drain(queue) == [ipaddress.IPv4Address("1.2.3.4")]

    @pytest.mark.asyncio
    async def test_wrong_password_rejected(self, aiohttp_client, queue, caplog):
        server = PushServer(queue, username="user", password="pass", basic_auth=True)
        client = await aiohttp_client(server.app)

        with caplog.at_level(logging.WARNING):
            resp = await client.get(
                "/ip", params={"v4": "1.2.3.4"}, auth=BasicAuth("user", "wrong")
            )

        assert resp.status == 401
        assert drain(queue) == []
        assert "username / password mismatch" in caplog.text

    @pytest.mark.asyncio
    async def test_missing_header_gets_challenge(self, aiohttp_client, queue):
        server = PushServer(queue, username="user", password="pass", basic_auth=True)
        client = await aiohttp_client(server.app)

        resp = await client.get("/ip", params={"v4": "1.2.3.4"})

        assert resp.status == 401
        assert resp.headers["WWW-Authenticate"] == f'Basic realm="{REALM}"'
        assert drain(queue) == []

    @pytest.mark.asyncio
    async def test_malformed_header_gets_challenge(self, aiohttp_client, queue):
        server = PushServer(queue, username="user", password="pass", basic_auth=True)
        client = await aiohttp_client(server.app)

        resp = await client.get(
            "/ip", params={"v4": "1.2.3.4"}, headers={"Authorization": "Basic !!!"}
        )

        assert resp.status == 401
        assert "WWW-Authenticate" in resp.headers

    @pytest.mark.asyncio
    async def test_query_credentials_ignored(self, aiohttp_client, queue):
        """In Basic mode, query parameters do not authenticate."""
        server = PushServer(queue, username="user", password="pass", basic_auth=True)
        client = await aiohttp_client(server.app)

        resp = await client.get(
            "/ip", params={"v4": "1.2.3.4", "username": "user", "password": "pass"}
        )

        assert resp.status == 401
        assert drain(queue) == []


class TestPushServerQueryAuth:
    """Tests for query-parameter credentials."""

    @pytest.mark.asyncio
    async def test_valid_credentials(self, aiohttp_client, queue):
        server = PushServer(queue, username="user", password="pass")
        client = await aiohttp_client(server.app)

        resp = await client.get(
            "/ip",
            params={
                "v4": "1.2.3.4",
                "v6": "2001:db8::1",
                "username": "user",
                "password": "pass",
            },
        )

        assert resp.status == 200
        assert drain(queue) == [
            ipaddress.IPv4Address("1.2.3.4"),
            ipaddress.IPv6Address("2001:db8::1"),
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("password", ["xass", "pasx", "paxs", ""])
    async def test_mismatch_rejected(self, aiohttp_client, queue, password):
        server = PushServer(queue, username="user", password="pass")
        client = await aiohttp_client(server.app)

        resp = await client.get(
            "/ip", params={"v4": "1.2.3.4", "username": "user", "password": password}
        )

        assert resp.status == 401
        assert "WWW-Authenticate" not in resp.headers
        assert drain(queue) == []

    @pytest.mark.asyncio
    async def test_no_credentials_configured(self, aiohttp_client, queue):
        """Empty expected credentials accept a request without any."""
        server = PushServer(queue)
        client = await aiohttp_client(server.app)

        resp = await client.get("/ip", params={"v4": "1.2.3.4"})

        assert resp.status == 200
        assert drain(queue) == [ipaddress.IPv4Address("1.2.3.4")]


class TestPushServerAddresses:
    """Tests for address extraction."""

    @pytest.mark.asyncio
    async def test_no_address_still_ok(self, aiohttp_client, queue):
        server = PushServer(queue)
        client = await aiohttp_client(server.app)

        resp = await client.get("/ip")

        assert resp.status == 200
        assert drain(queue) == []

    @pytest.mark.asyncio
    async def test_invalid_addresses_ignored(self, aiohttp_client, queue):
        server = PushServer(queue)
        client = await aiohttp_client(server.app)

        resp = await client.get("/ip", params={"v4": "2001:db8::1", "v6": "1.2.3.4"})

        assert resp.status == 200
        assert drain(queue) == []

    @pytest.mark.asyncio
    async def test_prefix_mode_builds_address(self, aiohttp_client, queue):
        server = PushServer(queue, interface_id=ipaddress.IPv6Address("::1"))
        client = await aiohttp_client(server.app)

        resp = await client.get(
            "/ip", params={"prefix": "2001:db8::/64", "v6": "2001:db8::99"}
        )

        assert resp.status == 200
        assert drain(queue) == [ipaddress.IPv6Address("2001:db8::1")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("prefix", ["", "2001:db8::", "192.0.2.0/24", "garbage/64"])
    async def test_prefix_mode_bad_prefix(self, aiohttp_client, queue, caplog, prefix):
        """A bad prefix is logged and the request still succeeds."""
        server = PushServer(queue, interface_id=ipaddress.IPv6Address("::1"))
        client = await aiohttp_client(server.app)

        with caplog.at_level(logging.WARNING):
            resp = await client.get("/ip", params={"v4": "1.2.3.4", "prefix": prefix})

        assert resp.status == 200
        assert drain(queue) == [ipaddress.IPv4Address("1.2.3.4")]
        assert "Failed to parse prefix" in caplog.text

    @pytest.mark.asyncio
    async def test_health(self, aiohttp_client, queue):
        server = PushServer(queue, username="user", password="pass", basic_auth=True)
        client = await aiohttp_client(server.app)

        resp = await client.get("/health")

        assert resp.status == 200
        assert await resp.text() == "ok"


class TestPushServerLifecycle:
    """Tests for start / stop."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, queue, unused_tcp_port):
        server = PushServer(queue)

        await server.start("127.0.0.1", unused_tcp_port)
        assert server._runner is not None

        await server.stop()
        assert server._runner is None
