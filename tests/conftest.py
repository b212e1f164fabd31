"""Shared fixtures for the push dispatch tests."""

from __future__ import annotations

import pytest
from fakes import FakeDirectory, FakeTokenStore, StaticCredentials


@pytest.fixture
def anyio_backend():
  return "asyncio"


@pytest.fixture
def directory() -> FakeDirectory:
  return FakeDirectory()


@pytest.fixture
def token_store() -> FakeTokenStore:
  return FakeTokenStore()


@pytest.fixture
def credentials() -> StaticCredentials:
  return StaticCredentials()
