"""
Switch and Health Probe Adapters

Boundary to the on-host mechanism that makes an artifact live, and to the
post-activation health probe.
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence

from fleetgen.exceptions import ActivationError
from fleetgen.models import Generation, Host, ResolvedSecret
from fleetgen.services.command_runner import (
    CommandRunner,
    CommandTimeout,
    render_command,
)


class Switcher(ABC):
    """Port interface for switching a host to a built artifact."""

    @abstractmethod
    def switch(
        self,
        host: Host,
        generation: Generation,
        secrets: Sequence[ResolvedSecret] = (),
    ) -> None:
        """
        Make the generation's artifact the host's live configuration.

        Must be all-or-nothing: on failure the host keeps running its
        previous configuration.

        Raises:
            ActivationError: If the switch fails
        """
        pass


class HealthProbe(ABC):
    """Port interface for post-activation health checks."""

    @abstractmethod
    def probe(self, host: Host, generation: Generation) -> bool:
        """Return True if the host looks healthy on the new generation."""
        pass


def _secrets_dir(secrets: Sequence[ResolvedSecret]) -> str:
    return str(secrets[0].path.parent) if secrets else ""


class CommandSwitcher(Switcher):
    """Switches hosts by running a command template."""

    def __init__(
        self,
        template: str,
        timeout: float,
        runner: Optional[CommandRunner] = None,
    ):
        self.template = template
        self.timeout = timeout
        self.runner = runner or CommandRunner()

    def switch(
        self,
        host: Host,
        generation: Generation,
        secrets: Sequence[ResolvedSecret] = (),
    ) -> None:
        command = render_command(
            self.template,
            host=host.id,
            platform=host.platform.value,
            artifact=generation.artifact_path,
            hash=generation.content_hash,
            generation=generation.sequence,
            secrets_dir=_secrets_dir(secrets),
        )

        try:
            result = self.runner.run(command, timeout=self.timeout)
        except CommandTimeout as e:
            raise ActivationError(str(e), host_id=host.id)

        if result.is_failure:
            raise ActivationError(
                f"switch exited with code {result.returncode}",
                host_id=host.id,
                context=" | ".join(result.tail(3)) or None,
            )


class CommandHealthProbe(HealthProbe):
    """Probes host health by running a command template; exit 0 is healthy."""

    def __init__(
        self,
        template: str,
        timeout: float,
        runner: Optional[CommandRunner] = None,
    ):
        self.template = template
        self.timeout = timeout
        self.runner = runner or CommandRunner()

    def probe(self, host: Host, generation: Generation) -> bool:
        command = render_command(
            self.template,
            host=host.id,
            platform=host.platform.value,
            hash=generation.content_hash,
            generation=generation.sequence,
        )
        try:
            return self.runner.run(command, timeout=self.timeout).is_success
        except CommandTimeout:
            return False


class NoopHealthProbe(HealthProbe):
    """Used when no probe command is configured; every host is healthy."""

    def probe(self, host: Host, generation: Generation) -> bool:
        return True
