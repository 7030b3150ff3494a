"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from hordechat.ai.memory.buffers import ConversationMemory
from tests.helpers import FakeClock, FakeJobClient


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_client() -> FakeJobClient:
    return FakeJobClient()


@pytest.fixture
def sample_memory(clock: FakeClock) -> ConversationMemory:
    memory = ConversationMemory()
    memory.append("Alice", "Hi Bot", clock())
    memory.append("Bot", "Hello Alice", clock.advance(1))
    memory.append("Bob", "What's up?", clock.advance(1))
    return memory
