"""
Service status inference for composeorch

Maps the state and health values reported by the compose engine onto a
ServiceStatus. All string matching against engine output lives here.
"""

from typing import Optional

from .models import ServiceStatus

_STOPPED_STATES = ("exited", "dead", "removing", "paused")


def parse_service_status(
    state: Optional[str],
    health: Optional[str] = None,
    status_text: Optional[str] = None,
) -> ServiceStatus:
    """
    Infer a service status from compose `ps` fields.

    Args:
        state: Container state (running, restarting, exited, ...)
        health: Health check result (healthy, unhealthy, starting), if any
        status_text: Free-form status text such as "Up 5s (healthy)"

    Returns:
        The inferred ServiceStatus
    """
    state = (state or "").strip().lower()
    health = (health or "").strip().lower()
    text = (status_text or "").strip().lower()

    # Anything restarting is not ready, whatever its last health result
    if "restart" in state or "restart" in text:
        return ServiceStatus.STARTING

    if health:
        if health == "healthy":
            return ServiceStatus.HEALTHY
        if health == "unhealthy":
            return ServiceStatus.UNHEALTHY
        return ServiceStatus.STARTING

    if state:
        if state == "running":
            return _status_from_text(text) or ServiceStatus.RUNNING
        if state == "created":
            return ServiceStatus.STARTING
        if state in _STOPPED_STATES:
            return ServiceStatus.UNHEALTHY
        return ServiceStatus.STARTING

    if text:
        from_text = _status_from_text(text)
        if from_text:
            return from_text
        if text.startswith("up") or "running" in text:
            return ServiceStatus.RUNNING
        if text.startswith("exited") or "dead" in text:
            return ServiceStatus.UNHEALTHY
        return ServiceStatus.STARTING

    return ServiceStatus.NOT_FOUND


def _status_from_text(text: str) -> Optional[ServiceStatus]:
    # "unhealthy" contains "healthy"
    if "unhealthy" in text:
        return ServiceStatus.UNHEALTHY
    if "health: starting" in text:
        return ServiceStatus.STARTING
    if "healthy" in text:
        return ServiceStatus.HEALTHY
    return None
