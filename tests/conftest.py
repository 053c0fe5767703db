"""Pytest configuration and shared fixtures for StackDeck tests."""

import os
import shutil
import tempfile
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

from stackdeck.models.stack import (
    IngressConfig,
    IngressRule,
    RetryConfig,
    RolloutSettings,
    TierConfig,
)
from fakes import make_tier


@pytest.fixture
def fast_settings() -> RolloutSettings:
    """Rollout settings with no waiting between attempts."""
    return RolloutSettings(
        probe_interval=0,
        probe_timeout=1,
        apply_timeout=1,
        call_timeout=1,
        retry=RetryConfig(max_retries=3, base_delay=0, max_delay=0),
    )


@pytest.fixture
def three_tiers() -> list[TierConfig]:
    """database <- backend <- frontend, declared out of order."""
    return [
        make_tier("frontend", depends_on=["backend"]),
        make_tier("database"),
        make_tier("backend", depends_on=["database"]),
    ]


@pytest.fixture
def ingress_config() -> IngressConfig:
    """Ingress routing / to the frontend tier."""
    return IngressConfig(
        name="shop",
        class_name="alb",
        rules=[IngressRule(path="/", tier="frontend", service_port=8080)],
    )


@pytest.fixture
def temp_dir() -> Generator[Path]:
    """Create a temporary directory for test file operations.

    Yields:
        Path to temporary directory
    """
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def isolated_env() -> Generator[dict[str, str]]:
    """Provide isolated environment variables for testing.

    Saves current environment and restores after test.
    """
    original_env = os.environ.copy()
    yield original_env
    os.environ.clear()
    os.environ.update(original_env)


def pytest_configure(config: Any) -> None:
    """Configure pytest with marker options."""
    config.addinivalue_line(
        "markers",
        "slow: marks tests as slow (deselect with '-m \"not slow\"')",
    )
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests",
    )
    config.addinivalue_line(
        "markers",
        "unit: marks tests as unit tests",
    )
