"""
Host Models

Dataclass models for the static host catalog.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict

from .secrets import SecretRef


class PlatformKind(Enum):
    """Kind of system a host configuration targets."""

    NIXOS = "nixos"
    DARWIN = "darwin"
    HOME_MANAGER = "home-manager"
    GENERIC_LINUX = "generic-linux"

    @classmethod
    def values(cls) -> list[str]:
        return [kind.value for kind in cls]


@dataclass(frozen=True)
class Host:
    """A single host of the fleet. Immutable for the lifetime of a run."""

    id: str
    platform: PlatformKind
    config_ref: str
    reachable: bool = True
    tests: tuple[str, ...] = ()
    secrets: tuple[SecretRef, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "platform": self.platform.value,
            "config_ref": self.config_ref,
            "reachable": self.reachable,
            "tests": list(self.tests),
            "secrets": [ref.name for ref in self.secrets],
        }

    def __repr__(self) -> str:
        return f"Host(id={self.id}, platform={self.platform.value})"

