"""Shared fixtures."""

import os

import pytest

os.environ.setdefault("LOG_TO_FILE", "false")

from scripts.lib.capabilities import Capabilities, set_capabilities  # noqa: E402
from tests.fakes import FakeSupabase  # noqa: E402


@pytest.fixture(autouse=True)
def all_capabilities():
    set_capabilities(Capabilities.all_enabled())
    yield
    set_capabilities(None)


@pytest.fixture
def fake_db():
    return FakeSupabase()
