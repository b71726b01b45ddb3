"""
Exception types for composeorch

Failures while entering a scope are raised to the caller. Failures while
tearing down are recorded as CleanupWarning values and never raised.
"""

from typing import Any, Dict, Optional

from .models import ServiceStatus


class ComposeOrchError(Exception):
    """Base class for composeorch errors."""

    def __init__(self, message: str):
        super().__init__(message)
        # Set by the lifecycle coordinator when raised out of enter_scope
        self.context: Optional[Any] = None


class ComposeCommandNotFound(ComposeOrchError):
    """No usable compose command-line interface was found."""


class StartupFailure(ComposeOrchError):
    """The compose engine reported a non-zero exit on `up`."""

    def __init__(self, project_name: str, exit_code: int, output: str = ""):
        self.project_name = project_name
        self.exit_code = exit_code
        self.output = output
        message = f"Compose up failed for project '{project_name}' (exit code {exit_code})"
        if output.strip():
            message += f": {output.strip()}"
        super().__init__(message)


class StopFailure(ComposeOrchError):
    """The compose engine reported a non-zero exit on `down`."""

    def __init__(self, project_name: str, exit_code: int, output: str = ""):
        self.project_name = project_name
        self.exit_code = exit_code
        self.output = output
        message = f"Compose down failed for project '{project_name}' (exit code {exit_code})"
        if output.strip():
            message += f": {output.strip()}"
        super().__init__(message)


class TimeoutFailure(ComposeOrchError):
    """Services did not reach their target status in time."""

    def __init__(
        self,
        project_name: str,
        target_status: ServiceStatus,
        pending: Dict[str, ServiceStatus],
        timeout: float,
    ):
        self.project_name = project_name
        self.target_status = target_status
        self.pending = dict(pending)
        self.timeout = timeout
        details = ", ".join(
            f"{service} ({status.name})" for service, status in sorted(self.pending.items())
        )
        super().__init__(
            f"Timed out after {timeout:g}s waiting for services in project "
            f"'{project_name}' to become {target_status.name}: {details}"
        )


class PublishFailure(ComposeOrchError):
    """The state file could not be written."""

    def __init__(self, destination: str, cause: BaseException):
        self.destination = destination
        self.cause = cause
        super().__init__(f"Failed to publish state file {destination}: {cause}")


class CleanupWarning(ComposeOrchError):
    """A single cleanup step failed. Collected, never raised."""

    def __init__(self, step: str, project_name: str, cause: BaseException):
        self.step = step
        self.project_name = project_name
        self.cause = cause
        super().__init__(f"Cleanup step '{step}' failed for project '{project_name}': {cause}")
