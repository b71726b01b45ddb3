"""
composeorch: ephemeral compose environments for integration tests

Starts isolated multi-container environments per test suite, class or
method, waits for them to become ready, publishes their container and port
facts to a state file, and tears them down again.
"""

__version__ = "0.1.0"

from .cleanup import CleanupCoordinator, CleanupReport
from .compose import ComposeService
from .config import ComposeOrchConfig, load_config
from .exceptions import (
    CleanupWarning,
    ComposeCommandNotFound,
    ComposeOrchError,
    PublishFailure,
    StartupFailure,
    StopFailure,
    TimeoutFailure,
)
from .lifecycle import LifecycleCoordinator, ScopeContext, ScopeRequest, WaitSpec
from .logging_config import setup_logging
from .models import (
    ComposeConfig,
    ComposeState,
    CoordinatorState,
    Lifecycle,
    PortMapping,
    ProcessResult,
    ServiceInfo,
    ServiceStatus,
    WaitConfig,
)
from .naming import ProjectNameAllocator, sanitize_project_name
from .process import ProcessRunner
from .readiness import ReadinessWaiter
from .state_file import StateFile, StateFilePublisher, load_state_file

__all__ = [
    "CleanupCoordinator",
    "CleanupReport",
    "CleanupWarning",
    "ComposeCommandNotFound",
    "ComposeConfig",
    "ComposeOrchConfig",
    "ComposeOrchError",
    "ComposeService",
    "ComposeState",
    "CoordinatorState",
    "Lifecycle",
    "LifecycleCoordinator",
    "PortMapping",
    "ProcessResult",
    "ProcessRunner",
    "ProjectNameAllocator",
    "PublishFailure",
    "ReadinessWaiter",
    "ScopeContext",
    "ScopeRequest",
    "ServiceInfo",
    "ServiceStatus",
    "StartupFailure",
    "StateFile",
    "StateFilePublisher",
    "StopFailure",
    "TimeoutFailure",
    "WaitConfig",
    "WaitSpec",
    "load_config",
    "load_state_file",
    "sanitize_project_name",
    "setup_logging",
]
