"""
fleetgen Services Layer

Adapters at the boundary to external tooling: evaluation, build, lint,
tests, secret decryption, switching and health probing.
"""

from .command_runner import CommandRunner, CommandTimeout, render_command
from .evaluator import EvaluatorAdapter, CommandEvaluator
from .builder import BuilderAdapter, CommandBuilder, digest_path, parse_build_output
from .checks import Linter, NoopLinter, CommandLinter, HostTestRunner
from .secret_backend import SecretBackend, CommandSecretBackend
from .switcher import (
    Switcher,
    HealthProbe,
    CommandSwitcher,
    CommandHealthProbe,
    NoopHealthProbe,
)

__all__ = [
    "CommandRunner",
    "CommandTimeout",
    "render_command",
    "EvaluatorAdapter",
    "CommandEvaluator",
    "BuilderAdapter",
    "CommandBuilder",
    "digest_path",
    "parse_build_output",
    "Linter",
    "NoopLinter",
    "CommandLinter",
    "HostTestRunner",
    "SecretBackend",
    "CommandSecretBackend",
    "Switcher",
    "HealthProbe",
    "CommandSwitcher",
    "CommandHealthProbe",
    "NoopHealthProbe",
]
