"""
Secret resolver - scoped, self-cleaning secret decryption

Decrypted material lives in a private directory that exists only while a
SecretScope is open. Leaving the scope removes it on every exit path,
including exceptions raised by the code running inside the scope.
"""

import os
import pwd
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional, Sequence

from fleetgen.constants import RAM_BACKED_RUNTIME_DIRS, SECRET_DIR_MODE
from fleetgen.exceptions import SecretError
from fleetgen.models import ResolvedSecret, SecretRef
from fleetgen.services.secret_backend import SecretBackend


def default_runtime_dir() -> Optional[Path]:
    """Prefer RAM-backed locations so plaintext never reaches a disk"""
    xdg_runtime = os.environ.get("XDG_RUNTIME_DIR")
    candidates = ([xdg_runtime] if xdg_runtime else []) + list(RAM_BACKED_RUNTIME_DIRS)
    for candidate in candidates:
        path = Path(candidate)
        if path.is_dir() and os.access(path, os.W_OK | os.X_OK):
            return path
    return None


class SecretScope:
    """
    Lifetime of one set of decrypted secrets.

    Usage:
        with resolver.scope(host.id) as scope:
            secrets = resolver.resolve(host.secrets, scope)
            switch(host, generation, secrets)
        # directory and plaintext are gone here
    """

    def __init__(self, host_id: str, runtime_dir: Optional[Path] = None, logger=None):
        self.host_id = host_id
        self.runtime_dir = runtime_dir
        self.logger = logger
        self.path: Optional[Path] = None
        self.secrets: List[ResolvedSecret] = []

    @property
    def is_open(self) -> bool:
        return self.path is not None

    def open(self) -> "SecretScope":
        if self.path is not None:
            raise RuntimeError(f"Secret scope for '{self.host_id}' is already open")
        path = tempfile.mkdtemp(
            prefix=f"fleetgen-secrets-{self.host_id}-",
            dir=str(self.runtime_dir) if self.runtime_dir else None,
        )
        os.chmod(path, SECRET_DIR_MODE)
        self.path = Path(path)
        return self

    def write(self, ref: SecretRef, plaintext: bytes) -> ResolvedSecret:
        """Write one secret with its declared mode and owner"""
        if self.path is None:
            raise RuntimeError("Secret scope is not open")

        target = self.path / ref.name
        fd = os.open(str(target), os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        try:
            os.write(fd, plaintext)
        finally:
            os.close(fd)

        try:
            if ref.owner:
                user = pwd.getpwnam(ref.owner)
                os.chown(target, user.pw_uid, user.pw_gid)
            os.chmod(target, ref.mode)
        except KeyError:
            raise SecretError(
                SecretError.PERMISSION_DENIED,
                ref.name,
                detail=f"unknown owner '{ref.owner}'",
                host_id=ref.host_id,
            )
        except PermissionError as e:
            raise SecretError(
                SecretError.PERMISSION_DENIED,
                ref.name,
                detail=f"cannot set owner/mode: {e.strerror}",
                host_id=ref.host_id,
            )

        resolved = ResolvedSecret(name=ref.name, path=target, host_id=ref.host_id)
        self.secrets.append(resolved)
        return resolved

    def close(self) -> None:
        """Overwrite and delete everything in the scope"""
        if self.path is None:
            return

        path, self.path = self.path, None
        for current, _dirs, files in os.walk(path):
            for name in files:
                _shred(Path(current) / name)
        shutil.rmtree(path, ignore_errors=True)
        self.secrets = []

        if self.logger:
            self.logger.log_host(self.host_id, "Secret scope closed")

    def __enter__(self) -> "SecretScope":
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def _shred(path: Path) -> None:
    """Zero a file's contents before it is unlinked"""
    try:
        os.chmod(path, 0o600)
        size = path.stat().st_size
        with open(path, "r+b") as f:
            f.write(b"\0" * size)
            f.flush()
            os.fsync(f.fileno())
    except OSError:
        # rmtree still removes it; zeroing is best effort on foreign-owned files
        pass


class SecretResolver:
    """Resolves secret references into files inside a SecretScope"""

    def __init__(
        self,
        backend: Optional[SecretBackend],
        runtime_dir: Optional[Path] = None,
        logger=None,
    ):
        self.backend = backend
        self.runtime_dir = Path(runtime_dir) if runtime_dir else default_runtime_dir()
        self.logger = logger

    def scope(self, host_id: str) -> SecretScope:
        return SecretScope(host_id, runtime_dir=self.runtime_dir, logger=self.logger)

    def resolve(
        self, refs: Sequence[SecretRef], scope: SecretScope
    ) -> List[ResolvedSecret]:
        """
        Decrypt every reference into the scope.

        Returns:
            ResolvedSecret handles valid until the scope closes

        Raises:
            SecretError: On the first secret that cannot be resolved
        """
        if not scope.is_open:
            raise RuntimeError("resolve() needs an open SecretScope")

        resolved = []
        for ref in refs:
            if self.backend is None:
                raise SecretError(
                    SecretError.DECRYPTION_FAILED,
                    ref.name,
                    detail="no secret backend configured",
                    host_id=ref.host_id,
                )
            try:
                plaintext = self.backend.decrypt(ref)
                resolved.append(scope.write(ref, plaintext))
            except SecretError as e:
                self._log(ref, f"failed ({e.kind})", "ERROR")
                raise
            except FileNotFoundError as e:
                self._log(ref, "failed (not-found)", "ERROR")
                raise SecretError(
                    SecretError.NOT_FOUND, ref.name, detail=str(e), host_id=ref.host_id
                )
            except PermissionError as e:
                self._log(ref, "failed (permission-denied)", "ERROR")
                raise SecretError(
                    SecretError.PERMISSION_DENIED,
                    ref.name,
                    detail=str(e),
                    host_id=ref.host_id,
                )
            self._log(ref, "resolved")

        return resolved

    def _log(self, ref: SecretRef, outcome: str, level: str = "INFO") -> None:
        # Name and outcome only
        if self.logger:
            self.logger.log_host(ref.host_id, f"secret '{ref.name}': {outcome}", level)
