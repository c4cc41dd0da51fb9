"""Shared fixtures for the relay tests."""

import pytest

from ghnotify.config import Config
from helpers import FakeClient, make_config, make_route


@pytest.fixture
def scenario_config() -> Config:
    """Default chats [100]; acme/app overrides to [200, 300] and ignores dev."""
    return make_config(
        default_chats=[100],
        routes=[make_route("acme/app", chats=[200, 300], branch_ignore=["dev"])],
    )


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()
