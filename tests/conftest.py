"""Root pytest configuration for all tests."""

from __future__ import annotations

import pytest

from agentrelay.config import reset_config
from agentrelay.safety import SafetyPolicy
from agentrelay.turns.events import StatusRecorder
from tests.utils import make_config

# Configure pytest-asyncio to use auto mode
# This is redundant with pyproject.toml but ensures it's set
pytest_plugins = ("pytest_asyncio",)


@pytest.fixture(autouse=True)
def _fresh_config_cache():
    """Never leak a cached RelayConfig between tests."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def config(tmp_path):
    """Finalized config rooted in tmp_path with fast streaming settings."""
    return make_config(tmp_path)


@pytest.fixture
def policy(config):
    return SafetyPolicy.from_config(config)


@pytest.fixture
def recorder():
    """StatusCallback that records every status event."""
    return StatusRecorder()
