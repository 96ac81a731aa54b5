"""Shared fixtures for the convo_hub test suite."""

import pytest

from convo_hub import ApiConfig


@pytest.fixture
def config():
    """API configuration with a dummy key."""
    return ApiConfig(api_key="test-key")
