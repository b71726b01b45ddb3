"""
Configuration management for composeorch

Handles configuration loading from environment variables, files,
and command-line arguments using Pydantic settings.
"""

import logging
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class ComposeOrchConfig(BaseSettings):
    """
    Main configuration class for composeorch.

    Configuration is loaded from:
    1. Environment variables (highest priority)
    2. .env file
    3. Default values (lowest priority)
    """

    model_config = SettingsConfigDict(
        env_prefix="COMPOSEORCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    log_dir: str = Field(
        default="logs",
        description="Directory for log files",
    )
    verbose: bool = Field(
        default=False,
        description="Enable verbose console output",
    )

    # Container engine configuration
    container_runtime: str = Field(
        default="docker",
        description="Container runtime (docker or podman)",
    )
    compose_command: str = Field(
        default="",
        description="Explicit compose command, e.g. 'docker-compose' (auto-detected if empty)",
    )
    process_timeout: float = Field(
        default=300.0,
        description="Timeout in seconds for compose up/down invocations",
    )
    query_timeout: float = Field(
        default=30.0,
        description="Timeout in seconds for status and listing invocations",
    )

    # Readiness configuration
    wait_timeout: float = Field(
        default=60.0,
        description="Default readiness timeout in seconds",
    )
    poll_interval: float = Field(
        default=2.0,
        description="Default readiness poll interval in seconds",
    )

    # Scope configuration
    state_dir: str = Field(
        default="build/compose-state",
        description="Directory where state files are published",
    )
    project_base: str = Field(
        default="test",
        description="Fallback base name for allocated project names",
    )
    remove_state_files: bool = Field(
        default=True,
        description="Delete the published state file during cleanup",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(valid_levels)}")
        return v.upper()

    @field_validator("container_runtime")
    @classmethod
    def validate_container_runtime(cls, v: str) -> str:
        """Validate container runtime is supported."""
        valid_runtimes = ["docker", "podman"]
        if v.lower() not in valid_runtimes:
            raise ValueError(
                f"container_runtime must be one of: {', '.join(valid_runtimes)}"
            )
        return v.lower()

    @field_validator("wait_timeout", "poll_interval", "process_timeout", "query_timeout")
    @classmethod
    def validate_positive_duration(cls, v: float) -> float:
        """Durations must be strictly positive."""
        if v <= 0:
            raise ValueError("durations must be greater than zero")
        return v

    def get_log_dir_path(self) -> Path:
        """Get log directory as Path object."""
        return Path(self.log_dir)

    def get_state_dir_path(self) -> Path:
        """Get state file directory as Path object."""
        return Path(self.state_dir)

    def create_directories(self) -> None:
        """Create necessary directories if they don't exist."""
        log_path = self.get_log_dir_path()
        log_path.mkdir(parents=True, exist_ok=True)
        (log_path / "compose").mkdir(exist_ok=True)

    @classmethod
    def from_cli_args(
        cls,
        verbose: bool = False,
        log_dir: str = "logs",
        log_level: Optional[str] = None,
        **kwargs,
    ) -> "ComposeOrchConfig":
        """
        Create configuration from CLI arguments.

        Args:
            verbose: Enable verbose output
            log_dir: Log directory
            log_level: Log level override
            **kwargs: Additional configuration options

        Returns:
            Configured ComposeOrchConfig instance
        """
        config_data = {
            "verbose": verbose,
            "log_dir": log_dir,
        }

        if log_level:
            config_data["log_level"] = log_level

        config_data.update(kwargs)

        return cls(**config_data)


def load_config(
    config_file: Optional[str] = None,
    cli_overrides: Optional[dict] = None,
) -> ComposeOrchConfig:
    """
    Load configuration with optional file and CLI overrides.

    Args:
        config_file: Optional env-style configuration file path
        cli_overrides: CLI argument overrides

    Returns:
        Loaded configuration
    """
    if config_file and Path(config_file).exists():
        logger.debug(f"Loading configuration from {config_file}")
        config = ComposeOrchConfig(_env_file=config_file)
    else:
        if config_file:
            logger.warning(f"Config file not found, using defaults: {config_file}")
        config = ComposeOrchConfig()

    if cli_overrides:
        config_data = config.model_dump()
        config_data.update(
            {key: value for key, value in cli_overrides.items() if value is not None}
        )
        config = ComposeOrchConfig(**config_data)

    config.create_directories()

    return config


def get_default_config() -> ComposeOrchConfig:
    """
    Get default configuration for development/testing.

    Returns:
        Default configuration instance
    """
    return ComposeOrchConfig(
        log_level="DEBUG",
        verbose=True,
    )
