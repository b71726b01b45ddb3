"""
Compose engine integration for composeorch

Wraps the container compose command-line interface: bringing a project up,
tearing it down with its volumes, discovering the containers and published
ports of a running project, and querying per-service readiness status.
"""

import json
import logging
import re
import shlex
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .config import ComposeOrchConfig
from .exceptions import ComposeCommandNotFound, ComposeOrchError, StartupFailure, StopFailure
from .models import ComposeConfig, ComposeState, PortMapping, ProcessResult, ServiceInfo, ServiceStatus
from .process import ProcessRunner
from .status import parse_service_status

logger = logging.getLogger(__name__)

# 0.0.0.0:9091->8080/tcp, :::9091->8080/tcp, 9091->8080
_PORT_PATTERN = re.compile(r"(?:[\d\.:\[\]a-fA-F]*:)?(\d+)->(\d+)(?:/(\w+))?")


def parse_ps_output(output: str) -> List[Dict[str, Any]]:
    """
    Parse `compose ps --format json` output.

    Newer compose releases print one JSON object per line, older ones print a
    single JSON array. Both are accepted.

    Args:
        output: Raw stdout of the ps command

    Returns:
        List of container entries
    """
    text = output.strip()
    if not text:
        return []

    if text.startswith("["):
        data = json.loads(text)
        return [entry for entry in data if isinstance(entry, dict)]

    entries = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            logger.debug(f"Skipping non-JSON ps line: {line}")
            continue
        if isinstance(entry, dict):
            entries.append(entry)
    return entries


def parse_published_ports(entry: Dict[str, Any]) -> List[PortMapping]:
    """
    Extract published port mappings from a ps entry.

    Uses the structured Publishers list when present and falls back to the
    Ports text. Unpublished ports and IPv4/IPv6 duplicates are dropped.
    """
    mappings: List[PortMapping] = []
    seen = set()

    def add(container_port: int, host_port: int, protocol: str) -> None:
        key = (container_port, host_port, protocol)
        if host_port <= 0 or key in seen:
            return
        seen.add(key)
        mappings.append(PortMapping(container_port, host_port, protocol))

    publishers = entry.get("Publishers") or []
    if publishers:
        for publisher in publishers:
            try:
                add(
                    int(publisher.get("TargetPort") or 0),
                    int(publisher.get("PublishedPort") or 0),
                    (publisher.get("Protocol") or "tcp").lower(),
                )
            except (TypeError, ValueError):
                logger.debug(f"Ignoring malformed publisher entry: {publisher}")
        return mappings

    ports_text = entry.get("Ports") or ""
    for match in _PORT_PATTERN.finditer(ports_text):
        host_port, container_port, protocol = match.groups()
        add(int(container_port), int(host_port), (protocol or "tcp").lower())
    return mappings


def _service_name(entry: Dict[str, Any]) -> str:
    return entry.get("Service") or entry.get("Name") or entry.get("Names") or ""


class ComposeService:
    """Drives the compose CLI on behalf of the lifecycle coordinator."""

    def __init__(
        self,
        runner: Optional[ProcessRunner] = None,
        container_runtime: str = "docker",
        compose_command: Optional[str] = None,
        process_timeout: float = 300.0,
        query_timeout: float = 30.0,
    ):
        """
        Initialize the compose service.

        Args:
            runner: Process runner used for every CLI call
            container_runtime: docker or podman
            compose_command: Explicit compose command, auto-detected when empty
            process_timeout: Timeout for up/down
            query_timeout: Timeout for ps/logs
        """
        self.runner = runner or ProcessRunner()
        self.container_runtime = container_runtime
        self.process_timeout = process_timeout
        self.query_timeout = query_timeout
        self._compose_command: Optional[List[str]] = (
            shlex.split(compose_command) if compose_command else None
        )

    @classmethod
    def from_config(
        cls, config: ComposeOrchConfig, runner: Optional[ProcessRunner] = None
    ) -> "ComposeService":
        """Build a compose service from settings."""
        return cls(
            runner=runner,
            container_runtime=config.container_runtime,
            compose_command=config.compose_command or None,
            process_timeout=config.process_timeout,
            query_timeout=config.query_timeout,
        )

    def compose_command(self) -> List[str]:
        """
        Resolve the compose command, detecting it on first use.

        Returns:
            Command prefix such as ['docker', 'compose'] or ['docker-compose']

        Raises:
            ComposeCommandNotFound: if neither form is available
        """
        if self._compose_command is not None:
            return list(self._compose_command)

        plugin = [self.container_runtime, "compose"]
        result = self.runner.run(plugin + ["version"], timeout=self.query_timeout)
        if result.success:
            self._compose_command = plugin
        else:
            standalone = ["docker-compose"]
            result = self.runner.run(standalone + ["--version"], timeout=self.query_timeout)
            if not result.success:
                raise ComposeCommandNotFound(
                    f"Neither '{' '.join(plugin)}' nor 'docker-compose' is available"
                )
            self._compose_command = standalone

        logger.info(f"Using compose command: {' '.join(self._compose_command)}")
        return list(self._compose_command)

    def start(self, config: ComposeConfig) -> ComposeState:
        """
        Bring a compose project up and discover its containers.

        Args:
            config: Compose files and project identity

        Returns:
            ComposeState describing every service of the project

        Raises:
            StartupFailure: if `up` or the follow-up discovery fails
        """
        command = self.compose_command()
        for compose_file in config.compose_files:
            command += ["-f", compose_file]
        command += ["-p", config.project_name]
        for env_file in config.env_files:
            command += ["--env-file", env_file]
        command += ["up", "-d", "--remove-orphans"]

        cwd = str(Path(config.compose_files[0]).parent)
        logger.info(f"Starting compose project {config.project_name} ({config.stack_name})")
        result = self.runner.run(command, cwd=cwd, timeout=self.process_timeout)
        if not result.success:
            logger.error(
                f"Compose up failed for {config.project_name}: {result.combined_output}"
            )
            raise StartupFailure(config.project_name, result.exit_code, result.combined_output)

        ps_result, entries = self._ps(config.project_name)
        if entries is None:
            raise StartupFailure(
                config.project_name,
                ps_result.exit_code,
                f"service discovery failed: {ps_result.combined_output}",
            )

        state = ComposeState(stack_name=config.stack_name, project_name=config.project_name)
        for entry in entries:
            name = _service_name(entry)
            if not name:
                continue
            state.services[name] = ServiceInfo(
                container_id=entry.get("ID") or "",
                container_name=entry.get("Name") or "",
                state=entry.get("State") or "",
                published_ports=parse_published_ports(entry),
            )

        logger.info(f"Compose project started: {state.get_summary()}")
        return state

    def stop(self, project_name: str) -> None:
        """
        Tear a compose project down, removing its volumes.

        Raises:
            StopFailure: if `down` exits non-zero
        """
        command = self.compose_command() + [
            "-p",
            project_name,
            "down",
            "--remove-orphans",
            "--volumes",
        ]
        logger.info(f"Stopping compose project {project_name}")
        result = self.runner.run(command, timeout=self.process_timeout)
        if not result.success:
            raise StopFailure(project_name, result.exit_code, result.combined_output)

    def query_status(self, project_name: str, service: str) -> ServiceStatus:
        """
        Query the readiness status of one service.

        A failed query is reported as NOT_FOUND rather than raised, so the
        readiness waiter keeps polling.
        """
        ps_result, entries = self._ps(project_name, [service])
        if entries is None:
            logger.warning(
                f"Status query failed for {service} in {project_name}: "
                f"{ps_result.combined_output}"
            )
            return ServiceStatus.NOT_FOUND

        for entry in entries:
            if _service_name(entry) == service:
                return parse_service_status(
                    entry.get("State"), entry.get("Health"), entry.get("Status")
                )
        return ServiceStatus.NOT_FOUND

    def capture_logs(
        self,
        project_name: str,
        services: Iterable[str] = (),
        tail: Optional[int] = None,
    ) -> str:
        """
        Capture container logs for a project.

        Args:
            project_name: Compose project
            services: Limit to these services (all when empty)
            tail: Only the last N lines per container

        Returns:
            Combined log output

        Raises:
            ComposeOrchError: if the logs command fails
        """
        command = self.compose_command() + ["-p", project_name, "logs", "--no-color"]
        if tail is not None:
            command += ["--tail", str(tail)]
        command += list(services)

        result = self.runner.run(command, timeout=self.query_timeout)
        if not result.success:
            raise ComposeOrchError(
                f"Failed to capture logs for project '{project_name}': {result.combined_output}"
            )
        return result.output

    def _ps(
        self, project_name: str, services: Sequence[str] = ()
    ) -> Tuple[ProcessResult, Optional[List[Dict[str, Any]]]]:
        command = self.compose_command() + [
            "-p",
            project_name,
            "ps",
            "--all",
            "--format",
            "json",
        ]
        command += list(services)

        result = self.runner.run(command, timeout=self.query_timeout)
        if not result.success:
            return result, None
        try:
            return result, parse_ps_output(result.output)
        except json.JSONDecodeError as e:
            logger.warning(f"Could not parse compose ps output for {project_name}: {e}")
            return ProcessResult(
                exit_code=1, output=result.output, error=str(e), command=result.command
            ), None
