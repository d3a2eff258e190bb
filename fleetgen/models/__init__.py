"""
fleetgen Domain Models

Clean dataclass-based models for type-safe data handling.
"""

from .results import (
    ValidationResult,
    ExecutionResult,
)
from .host import (
    Host,
    PlatformKind,
)
from .secrets import (
    SecretRef,
    ResolvedSecret,
)
from .generation import (
    Artifact,
    Generation,
    GenerationStatus,
)
from .checks import (
    CheckStage,
    CheckOutcome,
    CheckResult,
    CheckReport,
    EvaluatedGraph,
)
from .deployment import (
    RollbackPolicy,
    DeploymentPlan,
    HostOutcome,
    HostResult,
    FleetStatus,
    DeploymentOutcome,
)

__all__ = [
    # Results
    "ValidationResult",
    "ExecutionResult",
    # Hosts
    "Host",
    "PlatformKind",
    # Secrets
    "SecretRef",
    "ResolvedSecret",
    # Generations
    "Artifact",
    "Generation",
    "GenerationStatus",
    # Checks
    "CheckStage",
    "CheckOutcome",
    "CheckResult",
    "CheckReport",
    "EvaluatedGraph",
    # Deployment
    "RollbackPolicy",
    "DeploymentPlan",
    "HostOutcome",
    "HostResult",
    "FleetStatus",
    "DeploymentOutcome",
]
