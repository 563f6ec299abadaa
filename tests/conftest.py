"""Pytest fixtures and configuration."""

import sys
from pathlib import Path

import pytest
import structlog

from prescience.config import Settings, get_settings


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip integration tests by default unless -m integration is specified."""
    markexpr = config.getoption("-m", default="")
    if "integration" in markexpr:
        return

    skip_integration = pytest.mark.skip(reason="Integration test - run with: pytest -m integration")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


@pytest.fixture
def anyio_backend() -> str:
    """Use asyncio for async tests."""
    return "asyncio"


@pytest.fixture(autouse=True)
def _logs_to_stderr() -> None:
    # stdout is reserved for CLI JSON, also before setup_logging runs
    structlog.configure(logger_factory=structlog.PrintLoggerFactory(file=sys.stderr))


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> None:
    get_settings.cache_clear()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings with an isolated signals directory and Telegram/admin credentials."""
    return Settings(
        signals_dir=tmp_path,
        telegram_bot_token="test-bot-token",
        telegram_chat_id="-100123",
        admin_token="admin-secret",
    )
