"""
Best-effort teardown for composeorch

Runs an ordered list of independent cleanup steps against a project. Every
step runs even when earlier ones fail; failures are logged and reported as
CleanupWarning values, never raised.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from .exceptions import CleanupWarning, ComposeOrchError
from .process import ProcessRunner
from .state_file import remove_state_file

logger = logging.getLogger(__name__)

COMPOSE_PROJECT_LABEL = "com.docker.compose.project"


@dataclass
class CleanupStepResult:
    """Outcome of one cleanup step."""

    step: str
    success: bool
    message: str = ""
    warning: Optional[CleanupWarning] = None


@dataclass
class CleanupReport:
    """Outcome of a full cleanup run."""

    project_name: str
    steps: List[CleanupStepResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(step.success for step in self.steps)

    @property
    def warnings(self) -> List[CleanupWarning]:
        return [step.warning for step in self.steps if step.warning is not None]

    def get_summary(self) -> str:
        """Get a summary string for the cleanup run."""
        passed = sum(1 for step in self.steps if step.success)
        status = "✅ CLEAN" if self.success else "⚠️  PARTIAL"
        return f"{status}: {self.project_name} ({passed}/{len(self.steps)} steps succeeded)"


class CleanupCoordinator:
    """Removes everything a compose project may have left behind."""

    def __init__(
        self,
        compose_service,
        runner: Optional[ProcessRunner] = None,
        container_runtime: str = "docker",
        timeout: float = 30.0,
        remove_state_files: bool = True,
    ):
        """
        Initialize the cleanup coordinator.

        Args:
            compose_service: Object providing stop(project_name)
            runner: Process runner for direct container runtime calls
            container_runtime: docker or podman
            timeout: Timeout for each runtime call
            remove_state_files: Whether to delete the published state file
        """
        self.compose_service = compose_service
        self.runner = runner or ProcessRunner()
        self.container_runtime = container_runtime
        self.timeout = timeout
        self.remove_state_files = remove_state_files

    def cleanup(
        self, project_name: str, state_file: Optional[Union[str, Path]] = None
    ) -> CleanupReport:
        """
        Tear a project down.

        Steps, in order: compose down with volumes, force-remove containers
        matching the project name, force-remove containers carrying the
        project label, delete the state file. Safe to call repeatedly.

        Args:
            project_name: Compose project to remove
            state_file: Published state file to delete, if any, along with
                stale state files of the same project

        Returns:
            CleanupReport with one entry per step
        """
        steps: List[Tuple[str, Callable[[], str]]] = [
            ("compose_down", lambda: self._compose_down(project_name)),
            (
                "remove_by_name",
                lambda: self._force_remove(project_name, f"name={project_name}"),
            ),
            (
                "remove_by_label",
                lambda: self._force_remove(
                    project_name, f"label={COMPOSE_PROJECT_LABEL}={project_name}"
                ),
            ),
        ]
        if state_file is not None and self.remove_state_files:
            steps.append(
                ("remove_state_file", lambda: self._remove_state_file(state_file, project_name))
            )

        logger.info(f"Cleaning up project {project_name}")
        report = CleanupReport(project_name=project_name)
        for name, action in steps:
            try:
                message = action()
                report.steps.append(CleanupStepResult(step=name, success=True, message=message))
                logger.debug(f"Cleanup step {name} for {project_name}: {message}")
            except Exception as e:
                warning = CleanupWarning(name, project_name, e)
                logger.warning(str(warning))
                report.steps.append(
                    CleanupStepResult(step=name, success=False, message=str(e), warning=warning)
                )

        logger.info(report.get_summary())
        return report

    def _compose_down(self, project_name: str) -> str:
        self.compose_service.stop(project_name)
        return "compose project removed"

    def _force_remove(self, project_name: str, filter_expr: str) -> str:
        listing = self.runner.run(
            [self.container_runtime, "ps", "-aq", "--filter", filter_expr],
            timeout=self.timeout,
        )
        if not listing.success:
            raise ComposeOrchError(
                f"Listing containers with {filter_expr} failed: {listing.combined_output}"
            )

        container_ids = [line.strip() for line in listing.output.splitlines() if line.strip()]
        if not container_ids:
            return "no containers left"

        removal = self.runner.run(
            [self.container_runtime, "rm", "-f"] + container_ids,
            timeout=self.timeout,
        )
        if not removal.success:
            raise ComposeOrchError(
                f"Removing containers {', '.join(container_ids)} failed: {removal.combined_output}"
            )
        return f"removed {len(container_ids)} container(s)"

    def _remove_state_file(self, state_file: Union[str, Path], project_name: str) -> str:
        removed = remove_state_file(state_file, project_name)
        if not removed:
            return "no state file"
        return f"removed {', '.join(str(p) for p in removed)}"
