"""
External process execution for composeorch

Runs a command given as an argument list and returns a ProcessResult.
Failures are reported through the result's exit code, never raised, so
callers decide what a non-zero exit means for them.
"""

import logging
import os
import subprocess
import time
from typing import Dict, List, Optional, Sequence

from .logging_config import SubprocessLogHandler, mask_sensitive_data
from .models import ProcessResult

logger = logging.getLogger(__name__)

TIMEOUT_EXIT_CODE = 124
NOT_FOUND_EXIT_CODE = 127


class ProcessRunner:
    """Executes external commands with a timeout and captured output."""

    def __init__(
        self,
        default_timeout: Optional[float] = None,
        log_handler: Optional[SubprocessLogHandler] = None,
    ):
        """
        Initialize the process runner.

        Args:
            default_timeout: Timeout in seconds used when run() is not given one
            log_handler: Optional dedicated log for every command and its output
        """
        self.default_timeout = default_timeout
        self.log_handler = log_handler

    def run(
        self,
        args: Sequence[str],
        cwd: Optional[str] = None,
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> ProcessResult:
        """
        Run a command and capture its output.

        Args:
            args: Command and arguments
            cwd: Working directory for the command
            timeout: Timeout in seconds, falls back to the runner default
            env: Extra environment variables layered over os.environ

        Returns:
            ProcessResult; exit code 124 on timeout, 127 if the executable is missing
        """
        command: List[str] = [str(arg) for arg in args]
        effective_timeout = timeout if timeout is not None else self.default_timeout
        process_env = None
        if env:
            process_env = dict(os.environ)
            process_env.update(env)

        logger.debug(f"Running: {mask_sensitive_data(' '.join(command))}")
        if self.log_handler:
            self.log_handler.log_command(command)

        start_time = time.time()
        try:
            completed = subprocess.run(
                command,
                capture_output=True,
                text=True,
                cwd=cwd,
                timeout=effective_timeout,
                env=process_env,
            )
            result = ProcessResult(
                exit_code=completed.returncode,
                output=completed.stdout or "",
                error=completed.stderr or "",
                command=command,
                duration=time.time() - start_time,
            )
        except subprocess.TimeoutExpired as e:
            logger.warning(
                f"Command timed out after {effective_timeout}s: {mask_sensitive_data(' '.join(command))}"
            )
            result = ProcessResult(
                exit_code=TIMEOUT_EXIT_CODE,
                output=_decode(e.stdout),
                error=_decode(e.stderr) or f"Timed out after {effective_timeout}s",
                command=command,
                duration=time.time() - start_time,
            )
        except (FileNotFoundError, NotADirectoryError, PermissionError) as e:
            logger.warning(f"Could not execute {command[0]}: {e}")
            result = ProcessResult(
                exit_code=NOT_FOUND_EXIT_CODE,
                error=str(e),
                command=command,
                duration=time.time() - start_time,
            )

        if self.log_handler:
            if result.output:
                self.log_handler.log_output(result.output)
            if result.error:
                self.log_handler.log_output(result.error, logging.WARNING)
            self.log_handler.log_completion(result.exit_code, result.duration)

        logger.debug(result.get_summary())
        return result


def _decode(stream) -> str:
    if stream is None:
        return ""
    if isinstance(stream, bytes):
        return stream.decode("utf-8", errors="replace")
    return stream
