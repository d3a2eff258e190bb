"""
Lint and Test Adapters

Runners for the advisory lint stage and the host-declared test stage of
the check pipeline.
"""

import shutil
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from fleetgen.models import CheckOutcome, EvaluatedGraph, Host
from fleetgen.services.command_runner import (
    CommandRunner,
    CommandTimeout,
    child_environment,
    render_command,
)


class Linter(ABC):
    """Port interface for configuration linting."""

    @abstractmethod
    def lint(self, host: Host) -> tuple[CheckOutcome, list[str]]:
        """Return the lint outcome and its diagnostics."""
        pass


class NoopLinter(Linter):
    """Used when no lint command is configured."""

    def lint(self, host: Host) -> tuple[CheckOutcome, list[str]]:
        return CheckOutcome.PASS, ["no linter configured"]


class CommandLinter(Linter):
    """Lints by running a command template; each output line is a finding."""

    def __init__(
        self,
        template: str,
        timeout: float,
        runner: Optional[CommandRunner] = None,
    ):
        self.template = template
        self.timeout = timeout
        self.runner = runner or CommandRunner()

    def lint(self, host: Host) -> tuple[CheckOutcome, list[str]]:
        command = render_command(
            self.template,
            host=host.id,
            platform=host.platform.value,
            config_ref=host.config_ref,
        )
        try:
            result = self.runner.run(command, timeout=self.timeout)
        except CommandTimeout as e:
            return CheckOutcome.ERROR, [str(e)]

        findings = [line for line in result.output.splitlines() if line.strip()]
        if result.is_success:
            return CheckOutcome.PASS, findings
        return CheckOutcome.FAIL, findings or [
            f"linter exited with code {result.returncode}"
        ]


class HostTestRunner:
    """
    Runs a host's declared test commands.

    Tests run from the workspace root so relative scripts resolve. Every
    test gets its own copy of the environment with TMPDIR and HOME pointing
    at a fresh scratch directory, so hosts never share mutable state.
    Stops at the first failing test.
    """

    def __init__(
        self,
        timeout: float,
        root: Optional[Path] = None,
        runner: Optional[CommandRunner] = None,
    ):
        self.timeout = timeout
        self.root = Path(root) if root else Path.cwd()
        self.runner = runner or CommandRunner()

    def run_tests(
        self, host: Host, graph: Optional[EvaluatedGraph] = None
    ) -> tuple[CheckOutcome, list[str]]:
        if not host.tests:
            return CheckOutcome.PASS, ["no tests declared"]

        diagnostics = []
        for template in host.tests:
            command = render_command(
                template,
                host=host.id,
                platform=host.platform.value,
                config_ref=host.config_ref,
            )
            workdir = tempfile.mkdtemp(prefix=f"fleetgen-test-{host.id}-")
            env = child_environment(
                {
                    "FLEETGEN_HOST": host.id,
                    "FLEETGEN_PLATFORM": host.platform.value,
                    "FLEETGEN_CONFIG_REF": host.config_ref,
                    "FLEETGEN_WORKSPACE": str(self.root),
                    "TMPDIR": workdir,
                    "HOME": workdir,
                }
            )
            try:
                result = self.runner.run(
                    command,
                    timeout=self.timeout,
                    cwd=self.root,
                    env=env,
                    input_data=graph.payload if graph else None,
                )
            except CommandTimeout as e:
                return CheckOutcome.ERROR, diagnostics + [str(e)]
            finally:
                shutil.rmtree(workdir, ignore_errors=True)

            if result.is_failure:
                return CheckOutcome.FAIL, diagnostics + [
                    f"{command}: exited with code {result.returncode}",
                    *result.tail(10),
                ]
            diagnostics.append(f"{command}: ok ({result.duration_seconds:.1f}s)")

        return CheckOutcome.PASS, diagnostics
