"""
Scope lifecycle coordination for composeorch

Brings one orchestrated environment up for a suite, class or method scope
and tears it down again. Each enter_scope() call returns an explicit
ScopeContext which is handed back to exit_scope(); the coordinator keeps no
per-scope state of its own, so scopes may be entered concurrently.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

from .cleanup import CleanupCoordinator, CleanupReport
from .compose import ComposeService
from .config import ComposeOrchConfig
from .exceptions import ComposeOrchError, PublishFailure
from .logging_config import SubprocessLogHandler
from .models import (
    ComposeConfig,
    ComposeState,
    CoordinatorState,
    Lifecycle,
    ServiceStatus,
    WaitConfig,
)
from .naming import ProjectNameAllocator
from .process import ProcessRunner
from .readiness import ReadinessWaiter
from .state_file import StateFilePublisher, state_file_name

logger = logging.getLogger(__name__)

STATE_FILE_ENV = "COMPOSE_STATE_FILE"
PROJECT_NAME_ENV = "COMPOSE_PROJECT_NAME"


@dataclass
class WaitSpec:
    """A group of services that must reach one target status."""

    services: Sequence[str]
    target_status: ServiceStatus = ServiceStatus.HEALTHY


@dataclass
class ScopeRequest:
    """Everything needed to bring one scope's environment up."""

    stack_name: str
    compose_files: Sequence[str]
    scope: Lifecycle = Lifecycle.SUITE
    test_class: Optional[str] = None
    test_method: Optional[str] = None
    wait_groups: List[WaitSpec] = field(default_factory=list)
    timeout: Optional[float] = None
    poll_interval: Optional[float] = None
    state_file: Optional[str] = None
    state_dir: Optional[str] = None
    env_files: Sequence[str] = ()
    project_base: Optional[str] = None

    def discriminators(self) -> List[str]:
        """Names that distinguish this scope instance from its siblings."""
        if self.scope is Lifecycle.METHOD:
            return [d for d in (self.test_class, self.test_method) if d]
        if self.scope is Lifecycle.CLASS:
            return [self.test_class] if self.test_class else []
        return []


@dataclass
class ScopeContext:
    """Handle for one entered scope, passed back to exit_scope()."""

    request: ScopeRequest
    project_name: str
    state_file: Path
    state: CoordinatorState = CoordinatorState.IDLE
    compose_state: Optional[ComposeState] = None
    error: Optional[BaseException] = None
    cleanup_report: Optional[CleanupReport] = None

    def as_environment(self) -> Dict[str, str]:
        """Environment variables that point test code at this scope."""
        return {
            STATE_FILE_ENV: str(self.state_file),
            PROJECT_NAME_ENV: self.project_name,
        }


class LifecycleCoordinator:
    """Drives the start, wait, publish and cleanup sequence for scopes."""

    def __init__(
        self,
        compose_service,
        readiness_waiter: Optional[ReadinessWaiter] = None,
        publisher: Optional[StateFilePublisher] = None,
        cleanup_coordinator: Optional[CleanupCoordinator] = None,
        allocator: Optional[ProjectNameAllocator] = None,
        config: Optional[ComposeOrchConfig] = None,
    ):
        self.config = config or ComposeOrchConfig()
        self.compose_service = compose_service
        self.readiness_waiter = readiness_waiter or ReadinessWaiter(compose_service)
        self.publisher = publisher or StateFilePublisher()
        self.cleanup_coordinator = cleanup_coordinator or CleanupCoordinator(
            compose_service,
            container_runtime=self.config.container_runtime,
            timeout=self.config.query_timeout,
            remove_state_files=self.config.remove_state_files,
        )
        self.allocator = allocator or ProjectNameAllocator()

    @classmethod
    def from_config(cls, config: ComposeOrchConfig) -> "LifecycleCoordinator":
        """Build a coordinator wired to the real compose CLI."""
        runner = ProcessRunner(
            default_timeout=config.process_timeout,
            log_handler=SubprocessLogHandler("compose", config.log_dir),
        )
        compose_service = ComposeService.from_config(config, runner=runner)
        cleanup_coordinator = CleanupCoordinator(
            compose_service,
            runner=runner,
            container_runtime=config.container_runtime,
            timeout=config.query_timeout,
            remove_state_files=config.remove_state_files,
        )
        return cls(compose_service, cleanup_coordinator=cleanup_coordinator, config=config)

    def _state_file_path(self, request: ScopeRequest, project_name: str) -> Path:
        if request.state_file:
            return Path(request.state_file)
        if request.state_dir:
            state_dir = Path(request.state_dir)
        else:
            state_dir = self.config.get_state_dir_path()
        test_class = request.test_class if request.scope is not Lifecycle.SUITE else None
        test_method = request.test_method if request.scope is Lifecycle.METHOD else None
        return state_dir / state_file_name(
            request.stack_name, test_class, test_method, project_name=project_name
        )

    def enter_scope(self, request: ScopeRequest) -> ScopeContext:
        """
        Start an environment and wait for it to become ready.

        On any failure the environment is cleaned up before the error is
        re-raised. ComposeOrchError instances carry the failed context in
        their `context` attribute.

        Args:
            request: Stack, compose files, scope and readiness targets

        Returns:
            ScopeContext in the READY state

        Raises:
            StartupFailure, TimeoutFailure, PublishFailure
        """
        base = request.project_base or request.stack_name or self.config.project_base
        project_name = self.allocator.allocate(base, *request.discriminators())
        context = ScopeContext(
            request=request,
            project_name=project_name,
            state_file=self._state_file_path(request, project_name),
        )
        timeout = request.timeout or self.config.wait_timeout
        poll_interval = request.poll_interval or self.config.poll_interval

        logger.info(
            f"Entering {request.scope.value} scope for {request.stack_name} "
            f"as project {context.project_name}"
        )
        try:
            context.state = CoordinatorState.STARTING
            context.compose_state = self.compose_service.start(
                ComposeConfig(
                    compose_files=tuple(request.compose_files),
                    project_name=context.project_name,
                    stack_name=request.stack_name,
                    env_files=tuple(request.env_files),
                )
            )

            for group in request.wait_groups:
                self.readiness_waiter.wait(
                    WaitConfig(
                        project_name=context.project_name,
                        services=tuple(group.services),
                        timeout=timeout,
                        poll_interval=poll_interval,
                        target_status=group.target_status,
                    )
                )

            try:
                self.publisher.publish(
                    context.compose_state,
                    context.state_file,
                    lifecycle=request.scope,
                    test_class=request.test_class if request.scope is not Lifecycle.SUITE else None,
                    test_method=request.test_method if request.scope is Lifecycle.METHOD else None,
                )
            except OSError as e:
                raise PublishFailure(str(context.state_file), e) from e

            context.state = CoordinatorState.READY
            logger.info(f"Scope ready: {context.compose_state.get_summary()}")
            return context

        except Exception as e:
            context.state = CoordinatorState.FAILED
            context.error = e
            logger.error(f"Failed to enter scope for project {context.project_name}: {e}")
            self._log_container_output(context)
            context.cleanup_report = self._run_cleanup(context)
            context.compose_state = None
            if isinstance(e, ComposeOrchError):
                e.context = context
            raise

    def exit_scope(self, context: Optional[ScopeContext]) -> Optional[CleanupReport]:
        """
        Tear a scope's environment down. Never raises.

        Contexts that never started, or were already stopped, are left alone.

        Returns:
            CleanupReport, or None if nothing was done
        """
        if context is None:
            return None
        if context.state in (
            CoordinatorState.IDLE,
            CoordinatorState.STOPPED,
            CoordinatorState.TEARING_DOWN,
        ):
            logger.debug(f"Nothing to tear down for {context.project_name} ({context.state.value})")
            return None

        logger.info(f"Exiting scope for project {context.project_name}")
        context.state = CoordinatorState.TEARING_DOWN
        context.cleanup_report = self._run_cleanup(context)
        context.compose_state = None
        context.state = CoordinatorState.STOPPED
        return context.cleanup_report

    @contextmanager
    def environment(self, request: ScopeRequest) -> Iterator[ScopeContext]:
        """Enter a scope for the duration of a with-block."""
        context = self.enter_scope(request)
        try:
            yield context
        finally:
            self.exit_scope(context)

    def _run_cleanup(self, context: ScopeContext) -> Optional[CleanupReport]:
        try:
            return self.cleanup_coordinator.cleanup(context.project_name, context.state_file)
        except Exception as e:
            logger.warning(f"Cleanup raised for project {context.project_name}: {e}")
            return None

    def _log_container_output(self, context: ScopeContext) -> None:
        if context.compose_state is None:
            return
        try:
            logs = self.compose_service.capture_logs(context.project_name, tail=50)
        except ComposeOrchError as e:
            logger.debug(f"Could not capture logs for {context.project_name}: {e}")
            return
        if logs.strip():
            logger.debug(f"Recent container output for {context.project_name}:\n{logs}")
