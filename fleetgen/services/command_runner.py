"""Local command execution for the command-backed adapters."""

import os
import shlex
import subprocess
import time
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

from fleetgen.models import ExecutionResult


class CommandTimeout(TimeoutError):
    """Raised when a command runs past its stage timeout."""

    def __init__(self, command: str, timeout: float):
        self.command = command
        self.timeout = timeout
        super().__init__(f"Command timed out after {timeout:g}s: {command}")


def render_command(template: str, **values: object) -> str:
    """
    Fill a command template, shell-quoting every substituted value.

    Example:
        render_command("nix eval {config_ref}", config_ref="a b")
        -> "nix eval 'a b'"
    """
    quoted = {key: shlex.quote(str(value)) for key, value in values.items()}
    try:
        return template.format(**quoted)
    except KeyError as e:
        raise ValueError(f"Unknown placeholder {e} in command template: {template}")


class CommandRunner:
    """Service for running shell commands with a timeout."""

    def __init__(self, logger=None, cwd: Optional[Union[str, Path]] = None):
        """
        Initialize command runner.

        Args:
            logger: Optional DeployLogger receiving commands and output
            cwd: Default working directory (the workspace root for CLI runs)
        """
        self.logger = logger
        self.cwd = cwd

    def run(
        self,
        command: str,
        timeout: Optional[float],
        cwd: Optional[Union[str, Path]] = None,
        env: Optional[Mapping[str, str]] = None,
        input_data: Optional[Union[str, bytes]] = None,
        text: bool = True,
    ) -> ExecutionResult:
        """
        Execute a shell command and capture its output.

        Args:
            command: Command line (run through the shell)
            timeout: Timeout in seconds
            cwd: Working directory (defaults to the runner's cwd)
            env: Full environment for the child (inherits ours if None)
            input_data: Data written to stdin
            text: Decode output as text; when False stdout stays bytes

        Returns:
            ExecutionResult with execution details

        Raises:
            CommandTimeout: If the command exceeds the timeout
        """
        if self.logger:
            self.logger.log_command(command)

        start_time = time.time()
        try:
            result = subprocess.run(
                command,
                shell=True,
                cwd=cwd if cwd is not None else self.cwd,
                env=dict(env) if env is not None else None,
                input=input_data,
                capture_output=True,
                text=text,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            raise CommandTimeout(command, timeout)

        duration = time.time() - start_time
        stderr = result.stderr if text else result.stderr.decode(errors="replace")

        if self.logger and text and result.stdout:
            self.logger.log_output(result.stdout, "stdout")
        if self.logger and stderr:
            self.logger.log_output(stderr, "stderr")

        return ExecutionResult(
            returncode=result.returncode,
            stdout=result.stdout,
            stderr=stderr,
            command=command,
            duration_seconds=duration,
        )


def child_environment(extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Fresh copy of the process environment for one child process"""
    env = dict(os.environ)
    if extra:
        env.update(extra)
    return env
