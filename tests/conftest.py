"""Root test configuration."""

import logging

import pytest
import structlog

from stepwise.cli.ux import console
from stepwise.config.settings import Settings, get_settings
from stepwise.drivers.simulated import SimulatedDriver


def _configure_test_logging():
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    _configure_test_logging()


@pytest.fixture(autouse=True)
def _isolated_settings(tmp_path, monkeypatch):
    """Keep settings (and the CLI's logging setup) from leaking between tests."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("STEPWISE_STATE_DIR", str(tmp_path / "runs"))
    monkeypatch.delenv("STEPWISE_CLEANUP_POLICY", raising=False)
    monkeypatch.delenv("STEPWISE_LOG_FILE", raising=False)
    # Long tmp paths must not wrap in captured output
    monkeypatch.setattr(console, "width", 240)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
    _configure_test_logging()


class FakeClock:
    """Monotonic clock that only moves when something sleeps on it."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += max(seconds, 0)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        state_dir=str(tmp_path / "runs"),
        default_timeout=30,
        default_interval=1,
        default_backoff=1,
        default_max_interval=10,
        create_retry_wait=0.5,
    )


@pytest.fixture
def driver():
    return SimulatedDriver()


@pytest.fixture
def write_plan(tmp_path):
    """Write a plan YAML file and return its path as a string."""

    def _write(text, name="plan.yaml"):
        path = tmp_path / name
        path.write_text(text)
        return str(path)

    return _write
