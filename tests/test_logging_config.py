"""
Tests for logging configuration.
"""

import importlib
import logging
from pathlib import Path

import pytest

from composeorch import logging_config
from composeorch.logging_config import (
    SubprocessLogHandler,
    get_subprocess_log_file,
    mask_sensitive_data,
    setup_logging,
)


class TestSetupLogging:
    """Test setup_logging."""

    def test_console_only(self, temp_workspace):
        logger = setup_logging(
            log_dir=str(temp_workspace / "logs"), log_level="warning", enable_file_logging=False
        )

        assert logger.name == "composeorch"
        assert logging.getLogger().level == logging.WARNING
        assert not (temp_workspace / "logs").exists()

    def test_file_logging(self, temp_workspace):
        setup_logging(log_dir=str(temp_workspace / "logs"), verbose=True)

        assert logging.getLogger().level == logging.DEBUG
        log_files = list((temp_workspace / "logs").glob("composeorch_*.log"))
        assert len(log_files) == 1
        assert (temp_workspace / "logs" / "compose").is_dir()

    def test_other_library_loggers_untouched(self, temp_workspace):
        foreign = logging.getLogger("urllib3")
        foreign.setLevel(logging.NOTSET)

        importlib.reload(logging_config)
        logging_config.setup_logging(log_dir=str(temp_workspace / "logs"), enable_file_logging=False)

        assert foreign.level == logging.NOTSET


class TestMaskSensitiveData:
    """Test mask_sensitive_data."""

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("--password=hunter2", "--password=***"),
            ("--token abc123", "--token ***"),
            ("DB_PASSWORD=hunter2 APP_ENV=ci", "DB_PASSWORD=*** APP_ENV=ci"),
            ("REGISTRY_TOKEN=xyz", "REGISTRY_TOKEN=***"),
            ("postgresql://app:s3cret@db:5432/app", "postgresql://app:***@db:5432/app"),
            ("docker compose -p shop-1 up -d", "docker compose -p shop-1 up -d"),
        ],
    )
    def test_masking(self, message, expected):
        assert mask_sensitive_data(message) == expected


class TestSubprocessLogHandler:
    """Test SubprocessLogHandler."""

    def test_log_file_path(self, temp_workspace):
        path = Path(get_subprocess_log_file("compose_up", str(temp_workspace)))

        assert path.parent == temp_workspace / "compose"
        assert path.name.startswith("compose_up_")

    def test_records_command_and_completion(self, temp_workspace):
        handler = SubprocessLogHandler("cleanup", str(temp_workspace))

        handler.log_command(["docker", "run", "-e", "API_TOKEN=abc", "image"])
        handler.log_output("container started")
        handler.log_completion(1, 2.5)
        handler.close()

        content = Path(handler.get_log_file_path()).read_text(encoding="utf-8")
        assert "docker run -e API_TOKEN=*** image" in content
        assert "container started" in content
        assert "failed with return code 1" in content
        assert "abc" not in content
