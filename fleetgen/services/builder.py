"""
Builder Adapter

Boundary to the artifact build system. Turns an evaluated graph into a
content-addressed artifact. Identical graphs must give identical hashes;
that determinism is the builder's contract, not ours.
"""

import hashlib
import json
import os
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

from fleetgen.constants import CONTENT_HASH_LENGTH
from fleetgen.exceptions import BuildError
from fleetgen.models import Artifact, EvaluatedGraph
from fleetgen.services.command_runner import (
    CommandRunner,
    CommandTimeout,
    render_command,
)

HASH_PATTERN = re.compile(rf"^[0-9a-f]{{{CONTENT_HASH_LENGTH}}}$")
STEP_PATTERN = re.compile(r"(?:builder for|building) '([^']+)'")


class BuilderAdapter(ABC):
    """Port interface for artifact builds."""

    @abstractmethod
    def build(self, graph: EvaluatedGraph) -> Artifact:
        """
        Build an evaluated graph.

        Raises:
            BuildError: If the build fails
        """
        pass


class CommandBuilder(BuilderAdapter):
    """Builds by running a command template.

    The graph payload is passed on stdin. The command prints either a JSON
    object with "content_hash" and "path", or the artifact path alone, in
    which case the artifact's file tree is digested.
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

    def build(self, graph: EvaluatedGraph) -> Artifact:
        command = render_command(
            self.template,
            host=graph.host_id,
            config_ref=graph.config_ref,
            graph=graph.payload,
        )

        try:
            result = self.runner.run(
                command, timeout=self.timeout, input_data=graph.payload
            )
        except CommandTimeout as e:
            raise BuildError(str(e), failed_step="timeout", host_id=graph.host_id)

        if result.is_failure:
            match = STEP_PATTERN.search(result.output)
            raise BuildError(
                f"builder exited with code {result.returncode}: "
                + " | ".join(result.tail(3)),
                failed_step=match.group(1) if match else None,
                host_id=graph.host_id,
            )

        return parse_build_output(result.stdout, graph.host_id, root=self.runner.cwd)


def parse_build_output(
    stdout: str,
    host_id: Optional[str] = None,
    root: Optional[Union[str, Path]] = None,
) -> Artifact:
    """
    Turn builder stdout into an Artifact.

    A relative artifact path is taken relative to `root` (the directory the
    build command ran in) and recorded as an absolute path.

    Raises:
        BuildError: If the output names no usable artifact
    """
    lines = [line.strip() for line in stdout.splitlines() if line.strip()]
    if not lines:
        raise BuildError("builder produced no output", host_id=host_id)

    last = lines[-1]
    if last.startswith("{"):
        try:
            data = json.loads(last)
            content_hash = str(data["content_hash"]).lower()
            artifact_path = _resolve(str(data["path"]), root)
        except (ValueError, KeyError, TypeError) as e:
            raise BuildError(f"unreadable builder output: {e}", host_id=host_id)
        path = str(artifact_path)
    else:
        artifact_path = _resolve(last, root)
        path = str(artifact_path)
        if not artifact_path.exists():
            raise BuildError(f"artifact path does not exist: {path}", host_id=host_id)
        content_hash = digest_path(artifact_path)

    if not HASH_PATTERN.match(content_hash):
        raise BuildError(
            f"content hash is not a {CONTENT_HASH_LENGTH}-character hex digest: "
            f"{content_hash}",
            host_id=host_id,
        )

    return Artifact(content_hash=content_hash, path=path)


def _resolve(path: str, root: Optional[Union[str, Path]]) -> Path:
    resolved = Path(path)
    if not resolved.is_absolute() and root is not None:
        resolved = Path(root) / resolved
    return resolved


def digest_path(path: Path) -> str:
    """SHA-256 over a file or a directory tree (relative names + contents)"""
    digest = hashlib.sha256()

    if path.is_file():
        _feed_file(digest, path)
        return digest.hexdigest()

    for current, dirs, files in os.walk(path):
        dirs.sort()
        for name in sorted(files):
            file_path = Path(current) / name
            digest.update(str(file_path.relative_to(path)).encode())
            digest.update(b"\0")
            if file_path.is_symlink():
                digest.update(os.readlink(file_path).encode())
            else:
                _feed_file(digest, file_path)
            digest.update(b"\0")

    return digest.hexdigest()


def _feed_file(digest, path: Path) -> None:
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            digest.update(chunk)
