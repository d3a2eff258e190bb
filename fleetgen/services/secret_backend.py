"""
Secret Backend

Boundary to the encryption tooling. Turns a secret reference into
plaintext bytes. Key management stays with the tooling.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from fleetgen.exceptions import SecretError
from fleetgen.models import SecretRef
from fleetgen.services.command_runner import (
    CommandRunner,
    CommandTimeout,
    render_command,
)


class SecretBackend(ABC):
    """Port interface for secret decryption."""

    @abstractmethod
    def decrypt(self, ref: SecretRef) -> bytes:
        """
        Return the plaintext for a secret reference.

        Raises:
            SecretError: not-found, decryption-failed or permission-denied
        """
        pass


class CommandSecretBackend(SecretBackend):
    """Decrypts with a command template such as `sops -d {source}`.

    Relative sources are resolved against the workspace root. Plaintext is
    read from stdout and is never logged.
    """

    def __init__(
        self,
        template: str,
        timeout: float,
        root: Path,
        runner: Optional[CommandRunner] = None,
    ):
        self.template = template
        self.timeout = timeout
        self.root = Path(root)
        # Decryption output never reaches the run log
        self.runner = runner or CommandRunner()

    def _source_path(self, ref: SecretRef) -> Path:
        source = Path(ref.source).expanduser()
        return source if source.is_absolute() else self.root / source

    def decrypt(self, ref: SecretRef) -> bytes:
        source = self._source_path(ref)
        if not source.exists():
            raise SecretError(
                SecretError.NOT_FOUND,
                ref.name,
                detail=f"source {ref.source} does not exist",
                host_id=ref.host_id,
            )

        command = render_command(
            self.template, source=source, name=ref.name, host=ref.host_id
        )
        try:
            result = self.runner.run(command, timeout=self.timeout, text=False)
        except CommandTimeout:
            raise SecretError(
                SecretError.DECRYPTION_FAILED,
                ref.name,
                detail=f"decryption timed out after {self.timeout:g}s",
                host_id=ref.host_id,
            )

        if result.is_failure:
            kind = (
                SecretError.PERMISSION_DENIED
                if "permission denied" in result.stderr.lower()
                else SecretError.DECRYPTION_FAILED
            )
            raise SecretError(
                kind,
                ref.name,
                detail=f"decrypt command exited with code {result.returncode}",
                host_id=ref.host_id,
            )

        return result.stdout
