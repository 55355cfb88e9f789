"""Pytest configuration and shared fixtures."""

import pytest

from network.realtime import subscriptions


@pytest.fixture(autouse=True)
def clear_subscriptions():
    """Every test starts with an empty subscription table."""
    subscriptions.clear()
    yield
    subscriptions.clear()
