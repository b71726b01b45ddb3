"""
Project name allocation for composeorch

Produces compose project names that are unique per scope instance and
acceptable to the compose engine (lowercase letters, digits, '-' and '_').
"""

import logging
import re
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

logger = logging.getLogger(__name__)

FALLBACK_PROJECT_NAME = "test-project"

_INVALID_CHARS = re.compile(r"[^a-z0-9\-_]")
_REPEATED_DASHES = re.compile(r"-+")


def sanitize_project_name(name: str) -> str:
    """
    Make a string usable as a compose project name.

    Args:
        name: Raw name, possibly containing class or method names

    Returns:
        Lowercase name containing only [a-z0-9_-], starting with a letter or digit
    """
    sanitized = _INVALID_CHARS.sub("-", (name or "").lower())
    sanitized = _REPEATED_DASHES.sub("-", sanitized).strip("-")

    if not sanitized:
        return FALLBACK_PROJECT_NAME
    if not sanitized[0].isalnum():
        sanitized = f"test-{sanitized}"
    return sanitized


class ProjectNameAllocator:
    """
    Allocates unique project names.

    Names embed a microsecond timestamp. Within one allocator the timestamp is
    forced to increase strictly, so two allocations never collide even when
    the clock has not advanced between them.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or datetime.now
        self._lock = threading.Lock()
        self._last: Optional[datetime] = None

    def _next_timestamp(self) -> datetime:
        with self._lock:
            now = self._clock()
            if self._last is not None and now <= self._last:
                now = self._last + timedelta(microseconds=1)
            self._last = now
            return now

    def allocate(self, base: str, *discriminators: Optional[str]) -> str:
        """
        Allocate a project name.

        Args:
            base: Stack or suite name
            *discriminators: Optional test class / method names

        Returns:
            Sanitized name of the form base-class-method-HHMMSSffffff
        """
        stamp = self._next_timestamp().strftime("%H%M%S%f")
        parts = [base] + [d for d in discriminators if d] + [stamp]
        name = sanitize_project_name("-".join(parts))
        logger.debug(f"Allocated project name {name}")
        return name
