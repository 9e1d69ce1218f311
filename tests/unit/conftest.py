# tests/unit/conftest.py
"""Shared fixtures."""

import pytest

from fakes import BASE_URL, FakeBackend, ManualScheduler
from genstudio.config.schema import ApiConfig, StudioConfig


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def config() -> StudioConfig:
    return StudioConfig(api=ApiConfig(base_url=BASE_URL, token="test-token"))
