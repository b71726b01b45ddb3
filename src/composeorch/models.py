"""
Data models for composeorch

Defines the value types passed between the compose service, the readiness
waiter, the state file publisher and the lifecycle coordinator.
"""

import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

DEFAULT_WAIT_TIMEOUT = 60.0
DEFAULT_POLL_INTERVAL = 2.0


class Lifecycle(Enum):
    """Granularity at which one environment is shared across tests."""

    SUITE = "suite"
    CLASS = "class"
    METHOD = "method"


class ServiceStatus(Enum):
    """Inferred readiness status of a compose service."""

    NOT_FOUND = "not_found"
    STARTING = "starting"
    RUNNING = "running"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"

    def satisfies(self, target: "ServiceStatus") -> bool:
        """
        Check whether this status meets a readiness target.

        A healthy service is also running, so HEALTHY satisfies RUNNING.
        """
        if target is ServiceStatus.RUNNING:
            return self in (ServiceStatus.RUNNING, ServiceStatus.HEALTHY)
        return self is target


class CoordinatorState(Enum):
    """States of one scope instance driven by the lifecycle coordinator."""

    IDLE = "idle"
    STARTING = "starting"
    READY = "ready"
    TEARING_DOWN = "tearing_down"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass(frozen=True)
class ComposeConfig:
    """
    Compose files and project identity for one `up` invocation.

    File paths are stored as absolute paths.
    """

    compose_files: Tuple[str, ...]
    project_name: str
    stack_name: str
    env_files: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.compose_files:
            raise ValueError("at least one compose file is required")
        if not self.project_name:
            raise ValueError("project_name must not be empty")
        object.__setattr__(
            self, "compose_files", tuple(os.path.abspath(f) for f in self.compose_files)
        )
        object.__setattr__(self, "env_files", tuple(os.path.abspath(f) for f in self.env_files))


@dataclass(frozen=True)
class WaitConfig:
    """Readiness target for a set of services within one project."""

    project_name: str
    services: Tuple[str, ...]
    timeout: float = DEFAULT_WAIT_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    target_status: ServiceStatus = ServiceStatus.HEALTHY

    def __post_init__(self) -> None:
        object.__setattr__(self, "services", tuple(self.services))
        # Non-positive durations fall back to the defaults
        if not self.timeout or self.timeout <= 0:
            object.__setattr__(self, "timeout", DEFAULT_WAIT_TIMEOUT)
        if not self.poll_interval or self.poll_interval <= 0:
            object.__setattr__(self, "poll_interval", DEFAULT_POLL_INTERVAL)
        if self.target_status not in (ServiceStatus.RUNNING, ServiceStatus.HEALTHY):
            raise ValueError(
                f"target_status must be RUNNING or HEALTHY, got {self.target_status.name}"
            )


@dataclass(frozen=True)
class PortMapping:
    """A container port published on the host."""

    container_port: int
    host_port: int
    protocol: str = "tcp"

    def to_dict(self) -> Dict[str, object]:
        return {
            "container": self.container_port,
            "host": self.host_port,
            "protocol": self.protocol,
        }


@dataclass
class ServiceInfo:
    """Runtime facts about one compose service's container."""

    container_id: str
    container_name: str
    state: str
    published_ports: List[PortMapping] = field(default_factory=list)

    def host_port(self, container_port: int, protocol: Optional[str] = None) -> Optional[int]:
        """
        Look up the host port published for a container port.

        Args:
            container_port: Port inside the container
            protocol: Optional protocol filter (tcp/udp)

        Returns:
            Host port, or None if the port is not published
        """
        for mapping in self.published_ports:
            if mapping.container_port != container_port:
                continue
            if protocol and mapping.protocol != protocol:
                continue
            return mapping.host_port
        return None


@dataclass
class ComposeState:
    """Discovered runtime state of a started compose project."""

    stack_name: str
    project_name: str
    services: Dict[str, ServiceInfo] = field(default_factory=dict)

    def get_summary(self) -> str:
        """Get a summary string for the compose state."""
        names = ", ".join(sorted(self.services)) or "no services"
        return f"{self.stack_name} [{self.project_name}]: {names}"


@dataclass
class ProcessResult:
    """Result of an external process invocation."""

    exit_code: int
    output: str = ""
    error: str = ""
    command: List[str] = field(default_factory=list)
    duration: float = 0.0
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    @property
    def combined_output(self) -> str:
        """Stdout and stderr joined, as a user would see them."""
        return "\n".join(part for part in (self.output, self.error) if part)

    def get_summary(self) -> str:
        """Get a summary string for the process result."""
        status = "✅ SUCCESS" if self.success else f"❌ FAILED (exit {self.exit_code})"
        timing = f" ({self.duration:.1f}s)" if self.duration > 0 else ""
        return f"{status}: {' '.join(self.command)}{timing}"
