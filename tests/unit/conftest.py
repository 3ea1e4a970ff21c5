"""
Pytest configuration for trading_e2e unit tests.

Provides in-process mock platforms and configurations pointing at them.
"""
import asyncio
import sys
from pathlib import Path

import pytest

# Ensure the mock platform package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "integration"))

from mock_platform import BatchedMockPlatform, SingleFrameMockPlatform  # noqa: E402

from trading_e2e import Configuration, IgnoreOptions, StaticTokenProvider  # noqa: E402

TOKEN = "unit-test-token"


@pytest.fixture
def platform():
    """Single-frame mock platform on a free port."""
    with SingleFrameMockPlatform(token=TOKEN, heartbeat_interval_ms=50) as server:
        yield server


@pytest.fixture
def batched_platform():
    """Batched mock platform on a free port."""
    with BatchedMockPlatform(token=TOKEN, heartbeat_interval_ms=50) as server:
        yield server


def make_configuration(server, **changes):
    configuration = Configuration(
        base_url="http://127.0.0.1:9",
        ws_url=server.url,
        request_timeout=5,
        heartbeat_interval=0.05,
        poll_interval=0.01,
        ignore=IgnoreOptions(),
    )
    return configuration.replace(**changes) if changes else configuration


async def eventually(predicate, timeout=2.0):
    """Poll ``predicate`` until it holds or ``timeout`` expires."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() >= deadline:
            return False
        await asyncio.sleep(0.01)
    return True


@pytest.fixture
def configuration(platform):
    return make_configuration(platform)


@pytest.fixture
def token_provider():
    return StaticTokenProvider(TOKEN)
