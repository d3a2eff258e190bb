"""
Generation Models

Dataclass models for per-host generation history and build artifacts.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional


class GenerationStatus(Enum):
    """Status of a generation in its lifecycle."""

    PENDING = "pending"
    ACTIVE = "active"
    SUPERSEDED = "superseded"
    ROLLED_BACK = "rolled-back"

    @property
    def is_closed(self) -> bool:
        """Closed generations never become live again."""
        return self in (GenerationStatus.SUPERSEDED, GenerationStatus.ROLLED_BACK)


# Allowed status transitions. Superseded generations only move on when a
# rollback discards them.
TRANSITIONS = {
    GenerationStatus.PENDING: {GenerationStatus.ACTIVE, GenerationStatus.ROLLED_BACK},
    GenerationStatus.ACTIVE: {GenerationStatus.SUPERSEDED, GenerationStatus.ROLLED_BACK},
    GenerationStatus.SUPERSEDED: {GenerationStatus.ROLLED_BACK},
    GenerationStatus.ROLLED_BACK: set(),
}


@dataclass(frozen=True)
class Artifact:
    """Content-addressed build output."""

    content_hash: str
    path: str

    @property
    def short_hash(self) -> str:
        return self.content_hash[:12]

    def __repr__(self) -> str:
        return f"Artifact(hash={self.short_hash}, path={self.path})"


@dataclass(frozen=True)
class Generation:
    """One recorded application of an artifact to a host."""

    host_id: str
    sequence: int
    content_hash: str
    artifact_path: str
    timestamp: str
    status: GenerationStatus = GenerationStatus.PENDING
    predecessor: Optional[int] = None
    restored_from: Optional[int] = None
    reason: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == GenerationStatus.ACTIVE

    @property
    def artifact(self) -> Artifact:
        return Artifact(content_hash=self.content_hash, path=self.artifact_path)

    def transition(
        self,
        status: GenerationStatus,
        timestamp: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> "Generation":
        """
        Return a copy of this generation in a new status.

        Raises:
            ValueError: If the transition is not allowed
        """
        if status not in TRANSITIONS[self.status]:
            raise ValueError(
                f"Generation {self.host_id}#{self.sequence}: "
                f"illegal transition {self.status.value} -> {status.value}"
            )
        return replace(
            self,
            status=status,
            timestamp=timestamp or self.timestamp,
            reason=reason if reason is not None else self.reason,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "sequence": self.sequence,
            "content_hash": self.content_hash,
            "artifact_path": self.artifact_path,
            "timestamp": self.timestamp,
            "status": self.status.value,
            "predecessor": self.predecessor,
            "restored_from": self.restored_from,
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, host_id: str, data: Dict[str, Any]) -> "Generation":
        """Create from dictionary."""
        return cls(
            host_id=host_id,
            sequence=int(data["sequence"]),
            content_hash=data["content_hash"],
            artifact_path=data.get("artifact_path", ""),
            timestamp=data.get("timestamp", ""),
            status=GenerationStatus(data.get("status", "pending")),
            predecessor=data.get("predecessor"),
            restored_from=data.get("restored_from"),
            reason=data.get("reason"),
        )

    def __repr__(self) -> str:
        return (
            f"Generation(host={self.host_id}, seq={self.sequence}, "
            f"status={self.status.value}, hash={self.content_hash[:12]})"
        )
