"""
State file publishing for composeorch

Writes the discovered ComposeState as a JSON document that test code reads
to find container ids and host ports, and loads such documents back.
"""

import json
import logging
import os
import re
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .exceptions import PublishFailure
from .models import ComposeState, Lifecycle, PortMapping, ServiceInfo

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def instance_suffix(project_name: str) -> str:
    """Return the per-instance part of a project name (text after the last '-')."""
    return project_name.rsplit("-", 1)[-1]


def state_file_name(
    stack_name: str,
    test_class: Optional[str] = None,
    test_method: Optional[str] = None,
    project_name: Optional[str] = None,
) -> str:
    """
    Build the file name for a scope's state file.

    When a project name is given its instance suffix is appended, so two
    live instances of the same scope never share a file.

    Returns:
        <stack>[-<class>][-<method>][-<suffix>]-state.json, with unsafe
        characters replaced by '_'
    """
    parts = [stack_name] + [p for p in (test_class, test_method) if p]
    if project_name:
        parts.append(instance_suffix(project_name))
    return _UNSAFE_FILENAME_CHARS.sub("_", "-".join(parts)) + "-state.json"


def state_to_dict(
    state: ComposeState,
    lifecycle: Lifecycle,
    test_class: Optional[str] = None,
    test_method: Optional[str] = None,
    timestamp: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Render a ComposeState as the state file document."""
    document: Dict[str, Any] = {
        "stackName": state.stack_name,
        "projectName": state.project_name,
        "lifecycle": lifecycle.value,
        "timestamp": (timestamp or datetime.now()).isoformat(),
    }
    if test_class:
        document["testClass"] = test_class
    if test_method:
        document["testMethod"] = test_method
    document["services"] = {
        name: {
            "containerId": info.container_id,
            "containerName": info.container_name,
            "state": info.state,
            "publishedPorts": [port.to_dict() for port in info.published_ports],
        }
        for name, info in state.services.items()
    }
    return document


class StateFilePublisher:
    """Publishes state files atomically."""

    def publish(
        self,
        state: ComposeState,
        destination: Union[str, Path],
        lifecycle: Lifecycle = Lifecycle.SUITE,
        test_class: Optional[str] = None,
        test_method: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> Path:
        """
        Write the state file.

        The document is written to a temporary file in the destination
        directory and renamed into place, so readers never see a partial file.

        Args:
            state: Discovered compose state
            destination: Final state file path
            lifecycle: Scope the environment belongs to
            test_class: Test class name, for class and method scopes
            test_method: Test method name, for method scopes
            timestamp: Publication time, now by default

        Returns:
            Path of the published file

        Raises:
            PublishFailure: if the file cannot be written
        """
        destination = Path(destination)
        document = state_to_dict(state, lifecycle, test_class, test_method, timestamp)

        temp_path: Optional[str] = None
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(
                prefix=f"{destination.name}.", suffix=".tmp", dir=str(destination.parent)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2)
                f.write("\n")
            os.replace(temp_path, destination)
            temp_path = None
        except OSError as e:
            logger.error(f"Failed to publish state file {destination}: {e}")
            raise PublishFailure(str(destination), e) from e
        finally:
            if temp_path and os.path.exists(temp_path):
                os.unlink(temp_path)

        logger.info(f"Published state file {destination}")
        return destination


def remove_state_file(
    path: Union[str, Path], project_name: Optional[str] = None
) -> List[Path]:
    """
    Delete a state file together with temporary files left beside it.

    When the project name is given, stale files of the same instance are
    removed too: files that start with the state file's scope prefix and
    carry the project's instance suffix.

    Returns:
        The paths that were removed
    """
    path = Path(path)
    removed: List[Path] = []
    if not path.parent.is_dir():
        return removed

    marker = None
    prefix = None
    if project_name:
        marker = f"-{_UNSAFE_FILENAME_CHARS.sub('_', instance_suffix(project_name))}-"
        if marker in path.name:
            prefix = path.name.split(marker, 1)[0] + "-"

    for candidate in sorted(path.parent.iterdir()):
        if not candidate.is_file():
            continue
        name = candidate.name
        own = candidate == path or (name.startswith(path.name) and name.endswith(".tmp"))
        stale = prefix is not None and name.startswith(prefix) and marker in name
        if own or stale:
            candidate.unlink()
            removed.append(candidate)
    return removed


@dataclass
class StateFile:
    """A parsed state file, as seen by test code."""

    stack_name: str
    project_name: str
    lifecycle: Lifecycle
    timestamp: str
    services: Dict[str, ServiceInfo] = field(default_factory=dict)
    test_class: Optional[str] = None
    test_method: Optional[str] = None

    def service(self, name: str) -> ServiceInfo:
        """Get a service by name. Raises KeyError if absent."""
        try:
            return self.services[name]
        except KeyError:
            raise KeyError(
                f"Service '{name}' not in state file (known: {', '.join(sorted(self.services))})"
            ) from None

    def host_port(self, service: str, container_port: int) -> int:
        """
        Get the host port published for a service's container port.

        Raises:
            KeyError: if the service or port is not published
        """
        host_port = self.service(service).host_port(container_port)
        if host_port is None:
            raise KeyError(f"Port {container_port} of service '{service}' is not published")
        return host_port

    def to_compose_state(self) -> ComposeState:
        return ComposeState(
            stack_name=self.stack_name,
            project_name=self.project_name,
            services=dict(self.services),
        )


def load_state_file(path: Union[str, Path]) -> StateFile:
    """
    Load a published state file.

    Args:
        path: Path to the JSON document

    Returns:
        Parsed StateFile
    """
    with open(path, "r", encoding="utf-8") as f:
        document = json.load(f)

    services = {}
    for name, data in (document.get("services") or {}).items():
        services[name] = ServiceInfo(
            container_id=data.get("containerId", ""),
            container_name=data.get("containerName", ""),
            state=data.get("state", ""),
            published_ports=[
                PortMapping(
                    container_port=int(port["container"]),
                    host_port=int(port["host"]),
                    protocol=port.get("protocol", "tcp"),
                )
                for port in data.get("publishedPorts") or []
            ],
        )

    return StateFile(
        stack_name=document.get("stackName", ""),
        project_name=document.get("projectName", ""),
        lifecycle=Lifecycle(document.get("lifecycle", Lifecycle.SUITE.value)),
        timestamp=document.get("timestamp", ""),
        services=services,
        test_class=document.get("testClass"),
        test_method=document.get("testMethod"),
    )
