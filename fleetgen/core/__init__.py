"""
fleetgen Core

Host registry, configuration, check pipeline, generation store, secret
resolver and the deployment orchestrator.
"""

from .config_loader import ConfigLoader, FleetConfig, FleetSettings
from .host_registry import HostRegistry
from .check_pipeline import CheckPipeline
from .generation_store import GenerationStore
from .secret_resolver import SecretResolver, SecretScope
from .orchestrator import DeploymentOrchestrator

__all__ = [
    "ConfigLoader",
    "FleetConfig",
    "FleetSettings",
    "HostRegistry",
    "CheckPipeline",
    "GenerationStore",
    "SecretResolver",
    "SecretScope",
    "DeploymentOrchestrator",
]
