"""
Readiness polling for composeorch

Blocks until every configured service reaches its target status, or raises
TimeoutFailure naming the services that never did.
"""

import logging
import time
from typing import Callable, Dict, Optional

from .exceptions import TimeoutFailure
from .models import ServiceStatus, WaitConfig

logger = logging.getLogger(__name__)


class ReadinessWaiter:
    """Polls a compose service until the configured services are ready."""

    def __init__(
        self,
        compose_service,
        sleep: Optional[Callable[[float], None]] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize the waiter.

        Args:
            compose_service: Object providing query_status(project_name, service)
            sleep: Sleep function, time.sleep by default
            clock: Monotonic clock, time.monotonic by default
        """
        self.compose_service = compose_service
        self._sleep = sleep or time.sleep
        self._clock = clock or time.monotonic

    def wait(self, config: WaitConfig) -> Dict[str, ServiceStatus]:
        """
        Wait for every service in the config to reach the target status.

        Each round queries every service. The wait succeeds only when all of
        them satisfy the target in the same round.

        Args:
            config: Project, services, target status, timeout and poll interval

        Returns:
            The status of every service in the successful round

        Raises:
            TimeoutFailure: if no round saw every service ready before the deadline
        """
        observed: Dict[str, ServiceStatus] = {
            service: ServiceStatus.NOT_FOUND for service in config.services
        }
        if not observed:
            return observed

        target = config.target_status
        pending = dict(observed)
        start = self._clock()
        polls = 0

        logger.info(
            f"Waiting up to {config.timeout:g}s for {', '.join(config.services)} "
            f"in {config.project_name} to become {target.name}"
        )

        while self._clock() - start < config.timeout:
            polls += 1
            for service in sorted(observed):
                status = self.compose_service.query_status(config.project_name, service)
                if status is not observed[service]:
                    logger.debug(f"{service}: {observed[service].name} -> {status.name}")
                observed[service] = status

            pending = {
                service: status
                for service, status in observed.items()
                if not status.satisfies(target)
            }
            if not pending:
                logger.info(
                    f"Services ready in {config.project_name} after {polls} poll(s)"
                )
                return observed

            self._sleep(config.poll_interval)

        logger.error(
            f"Readiness timeout in {config.project_name}: "
            + ", ".join(f"{s}={st.name}" for s, st in sorted(pending.items()))
        )
        raise TimeoutFailure(config.project_name, target, pending, config.timeout)
