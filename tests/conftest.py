"""Shared fixtures: temporary SQLite store, fake remote services, registry."""
import os

# Ensure tests don't accidentally use real API keys
os.environ.setdefault("OPENAI_API_KEY", "sk-test-fake-key")
os.environ.setdefault("DISPATCHER_API_KEY", "test-dispatcher-key")

import pytest
import pytest_asyncio

from voxdispatch.database import Store
from voxdispatch.registry import ServiceRegistry

from fakes import FakeBackend


@pytest_asyncio.fixture
async def store(tmp_path):
    s = Store(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await s.init()
    yield s
    await s.close()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def registry(store, backend):
    return ServiceRegistry(store, transport=backend.transport)
