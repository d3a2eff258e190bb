"""fleetgen - generation-based deployment orchestrator for declarative host fleets"""

__version__ = "0.1.0"
