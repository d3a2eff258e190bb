"""
fleetgen Exception Hierarchy

Clean exception hierarchy for consistent error handling across the
orchestrator. Per-host errors carry the host id and the pipeline stage
they were raised from.
"""

from typing import Optional


class FleetGenError(Exception):
    """Base exception for all fleetgen errors."""

    def __init__(self, message: str, context: Optional[str] = None):
        self.message = message
        self.context = context
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format error message with optional context."""
        if self.context:
            return f"{self.message}\nContext: {self.context}"
        return self.message


class ConfigError(FleetGenError):
    """Raised when fleet configuration or the host registry is invalid."""

    pass


class StateError(FleetGenError):
    """Raised when a generation log cannot be read or written."""

    pass


class HostError(FleetGenError):
    """Base for failures scoped to a single host."""

    stage = "unknown"

    def __init__(
        self,
        message: str,
        host_id: Optional[str] = None,
        context: Optional[str] = None,
    ):
        self.host_id = host_id
        super().__init__(message, context)


class EvalError(HostError):
    """Raised when a host configuration cannot be evaluated."""

    stage = "eval"

    def __init__(
        self,
        message: str,
        location: Optional[str] = None,
        host_id: Optional[str] = None,
    ):
        self.location = location
        super().__init__(
            message, host_id=host_id, context=f"at {location}" if location else None
        )


class BuildError(HostError):
    """Raised when the builder fails to produce an artifact."""

    stage = "build"

    def __init__(
        self,
        message: str,
        failed_step: Optional[str] = None,
        host_id: Optional[str] = None,
    ):
        self.failed_step = failed_step
        super().__init__(
            message,
            host_id=host_id,
            context=f"Failed step: {failed_step}" if failed_step else None,
        )


class SecretError(HostError):
    """Raised when a secret cannot be resolved."""

    stage = "secrets"

    NOT_FOUND = "not-found"
    DECRYPTION_FAILED = "decryption-failed"
    PERMISSION_DENIED = "permission-denied"

    def __init__(
        self,
        kind: str,
        secret_name: str,
        detail: str = "",
        host_id: Optional[str] = None,
    ):
        self.kind = kind
        self.secret_name = secret_name
        message = f"Secret '{secret_name}' {kind.replace('-', ' ')}"
        super().__init__(message, host_id=host_id, context=detail or None)


class ActivationError(HostError):
    """Raised when switching a host to a generation fails."""

    stage = "activation"

    def __init__(
        self,
        message: str,
        host_id: Optional[str] = None,
        context: Optional[str] = None,
        generation: Optional[int] = None,
    ):
        self.generation = generation
        super().__init__(message, host_id=host_id, context=context)


class RollbackError(HostError):
    """Raised when a rollback is refused. Nothing has changed when raised."""

    stage = "rollback"

    UNREACHABLE = "unreachable"
    ARTIFACT_MISSING = "artifact-missing"
    ALREADY_ACTIVE = "already-active"
    NO_ACTIVE = "no-active-generation"
    UNKNOWN_GENERATION = "unknown-generation"

    def __init__(
        self,
        kind: str,
        message: str,
        host_id: Optional[str] = None,
        context: Optional[str] = None,
    ):
        self.kind = kind
        super().__init__(message, host_id=host_id, context=context)


class HostNotFoundError(ConfigError):
    """Raised when a host name is not in the registry."""

    def __init__(self, host_id: str, available_hosts: list[str]):
        self.host_id = host_id
        self.available_hosts = available_hosts
        message = f"Host '{host_id}' not found in registry"
        context = f"Available hosts: {', '.join(available_hosts) or 'none'}"
        super().__init__(message, context)
