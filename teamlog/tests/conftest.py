from __future__ import annotations

import pytest

from teamlog.core.config import MessageLogConfig
from teamlog.storage.backends import InMemoryDocumentStore
from teamlog.tests.support import FakeClock


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> MessageLogConfig:
    return MessageLogConfig()
