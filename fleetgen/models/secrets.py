"""
Secret Models

Dataclass models for secret references and their decrypted handles.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from fleetgen.constants import DEFAULT_SECRET_MODE


@dataclass(frozen=True)
class SecretRef:
    """Reference to an encrypted secret a host needs at activation."""

    name: str
    source: str
    host_id: str
    owner: Optional[str] = None
    mode: int = DEFAULT_SECRET_MODE

    def __repr__(self) -> str:
        return f"SecretRef(name={self.name}, host={self.host_id})"


@dataclass(frozen=True)
class ResolvedSecret:
    """
    Decrypted secret material on disk.

    The path is only valid inside the SecretScope that produced it.
    """

    name: str
    path: Path
    host_id: str

    def __repr__(self) -> str:
        return f"ResolvedSecret(name={self.name}, host={self.host_id})"
