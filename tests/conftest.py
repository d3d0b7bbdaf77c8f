"""Root test configuration: per-test XDG directories and logging cleanup"""

import pytest
from loguru import logger

from tmpltr.config import ENV_PREFIX, Settings


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Point XDG config/data/cache at a per-test directory and clear TMPLTR_* overrides."""
    xdg = tmp_path / "xdg"
    monkeypatch.setenv("XDG_CONFIG_HOME", str(xdg / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(xdg / "data"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(xdg / "cache"))
    for name in Settings.model_fields:
        monkeypatch.delenv(f"{ENV_PREFIX}{name.upper()}", raising=False)
    yield xdg


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop sinks added by CLI invocations so they never outlive the test's streams."""
    yield
    logger.remove()
