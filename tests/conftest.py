"""
Pytest configuration and fixtures for composeorch tests.

Provides common fixtures and test utilities across all test modules.
"""

import os
import shutil
import tempfile
from collections.abc import Generator
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from composeorch.config import ComposeOrchConfig
from composeorch.logging_config import setup_logging
from composeorch.models import ComposeState, PortMapping, ServiceInfo

from .fakes import FakeClock, FakeComposeService, FakeProcessRunner


@pytest.fixture(scope="session")
def test_logs_dir() -> Generator[str, None, None]:
    """
    Create temporary directory for test logs that persists for the session.

    Yields:
        Path to temporary logs directory
    """
    temp_dir = tempfile.mkdtemp(prefix="composeorch_test_logs_")
    logs_dir = Path(temp_dir) / "logs"
    (logs_dir / "compose").mkdir(parents=True)

    yield str(logs_dir)

    shutil.rmtree(temp_dir)


@pytest.fixture
def isolated_test_env(test_logs_dir: str) -> Generator[dict[str, str], None, None]:
    """
    Create isolated test environment with clean environment variables.

    Args:
        test_logs_dir: Test logs directory from session fixture

    Yields:
        Dictionary of original environment variables
    """
    original_env = os.environ.copy()

    for key in list(os.environ.keys()):
        if key.startswith("COMPOSEORCH_") or key.startswith("COMPOSE_"):
            del os.environ[key]

    os.environ.update(
        {
            "COMPOSEORCH_LOG_DIR": test_logs_dir,
            "COMPOSEORCH_LOG_LEVEL": "DEBUG",
        }
    )

    yield original_env

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def temp_workspace() -> Generator[Path, None, None]:
    """
    Create temporary workspace directory for test files.

    Yields:
        Path to temporary workspace
    """
    temp_dir = tempfile.mkdtemp(prefix="composeorch_workspace_")
    workspace = Path(temp_dir)

    yield workspace

    shutil.rmtree(temp_dir)


@pytest.fixture
def test_config(isolated_test_env: dict[str, str], temp_workspace: Path) -> ComposeOrchConfig:
    """
    Create test configuration with safe defaults.

    Returns:
        Test configuration instance writing state files into the workspace
    """
    return ComposeOrchConfig(
        log_level="DEBUG",
        verbose=True,
        log_dir=os.environ["COMPOSEORCH_LOG_DIR"],
        state_dir=str(temp_workspace / "compose-state"),
        wait_timeout=5,
        poll_interval=1,
    )


@pytest.fixture
def test_logger(test_config: ComposeOrchConfig):
    """Configure logging for tests."""
    return setup_logging(
        log_dir=test_config.log_dir,
        verbose=test_config.verbose,
        log_level=test_config.log_level,
        enable_file_logging=False,
    )


@pytest.fixture
def compose_file(temp_workspace: Path) -> Path:
    """A minimal compose file on disk."""
    path = temp_workspace / "docker-compose.yml"
    path.write_text(
        "services:\n"
        "  web:\n"
        "    image: nginx:alpine\n"
        "    ports:\n"
        "      - '8080'\n"
    )
    return path


@pytest.fixture
def sample_state() -> ComposeState:
    """Compose state with a database and a web service."""
    return ComposeState(
        stack_name="shop",
        project_name="shop-160000000000",
        services={
            "db": ServiceInfo(
                container_id="a1b2c3",
                container_name="shop-160000000000-db-1",
                state="running",
                published_ports=[PortMapping(5432, 49153, "tcp")],
            ),
            "web": ServiceInfo(
                container_id="d4e5f6",
                container_name="shop-160000000000-web-1",
                state="running",
                published_ports=[
                    PortMapping(8080, 49154, "tcp"),
                    PortMapping(5353, 49155, "udp"),
                ],
            ),
        },
    )


@pytest.fixture
def fake_runner() -> FakeProcessRunner:
    return FakeProcessRunner()


@pytest.fixture
def fake_compose(sample_state: ComposeState) -> FakeComposeService:
    return FakeComposeService(services=sample_state.services)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fixed_datetime_clock():
    """A datetime clock that never advances."""
    instant = datetime(2024, 5, 17, 14, 30, 15, 123456)
    return lambda: instant


@pytest.fixture
def stepping_datetime_clock():
    """A datetime clock advancing one millisecond per call."""
    state = {"now": datetime(2024, 5, 17, 14, 30, 15)}

    def clock():
        state["now"] += timedelta(milliseconds=1)
        return state["now"]

    return clock


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "container: marks tests that require containers")


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers automatically."""
    for item in items:
        if "integration" in item.nodeid:
            item.add_marker(pytest.mark.integration)

        if any(keyword in item.nodeid for keyword in ["slow", "performance"]):
            item.add_marker(pytest.mark.slow)
