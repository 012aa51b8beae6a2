"""Pytest configuration and shared fixtures."""

import asyncio

import pytest
import pytest_asyncio


@pytest.fixture(autouse=True)
def reset_logging_state():
    """Reset logging state before each test."""
    from ddnsd.logging import reset_logging

    reset_logging()
    yield
    reset_logging()


@pytest_asyncio.fixture(autouse=True, loop_scope="function")
async def cleanup_aiohttp_sessions():
    """Give aiohttp sessions time to clean up their connectors.

    aiohttp's ClientSession.close() doesn't wait for the underlying
    connector to fully close. This can cause "Unclosed client session"
    warnings when the event loop closes before cleanup completes.
    """
    yield
    await asyncio.sleep(0)
