"""
Evaluator Adapter

Boundary to the configuration language evaluator. Turns a host's opaque
config reference into an evaluated graph without building anything.
"""

import re
from abc import ABC, abstractmethod
from typing import Optional

from fleetgen.exceptions import EvalError
from fleetgen.models import EvaluatedGraph, Host
from fleetgen.services.command_runner import (
    CommandRunner,
    CommandTimeout,
    render_command,
)

# "error: undefined variable 'foo' at /etc/hosts/web.nix:12:5"
LOCATION_PATTERN = re.compile(r"\bat ((?:/|\./|[\w.-]+/)[^\s:]+(?::\d+)+)")


class EvaluatorAdapter(ABC):
    """Port interface for configuration evaluation."""

    @abstractmethod
    def evaluate(self, host: Host) -> EvaluatedGraph:
        """
        Fully resolve a host's configuration graph.

        Raises:
            EvalError: On the first unresolved reference or evaluation failure
        """
        pass


class CommandEvaluator(EvaluatorAdapter):
    """Evaluates configurations by running a command template.

    The command's stdout becomes the graph payload handed to the builder.
    """

    def __init__(
        self,
        template: str,
        timeout: float,
        runner: Optional[CommandRunner] = None,
    ):
        self.template = template
        self.timeout = timeout
        self.runner = runner or CommandRunner()

    def evaluate(self, host: Host) -> EvaluatedGraph:
        command = render_command(
            self.template,
            host=host.id,
            platform=host.platform.value,
            config_ref=host.config_ref,
        )

        try:
            result = self.runner.run(command, timeout=self.timeout)
        except CommandTimeout as e:
            raise EvalError(str(e), host_id=host.id)

        if result.is_failure:
            message = next(
                (line for line in result.tail() if "error" in line.lower()),
                f"evaluator exited with code {result.returncode}",
            )
            raise EvalError(
                message.strip(),
                location=find_location(result.output),
                host_id=host.id,
            )

        return EvaluatedGraph(
            host_id=host.id,
            config_ref=host.config_ref,
            payload=result.stdout.strip(),
        )


def find_location(output: str) -> Optional[str]:
    """First 'at <file>:<line>' location mentioned in evaluator output"""
    match = LOCATION_PATTERN.search(output)
    return match.group(1) if match else None
