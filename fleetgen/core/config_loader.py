"""Configuration management for fleetgen workspaces"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import dotenv_values
from pydantic import BaseModel, Field, ValidationError, field_validator

from fleetgen.constants import (
    DEFAULT_BUILD_TIMEOUT,
    DEFAULT_CONCURRENCY,
    DEFAULT_EVAL_TIMEOUT,
    DEFAULT_LINT_TIMEOUT,
    DEFAULT_LOG_DIR,
    DEFAULT_POLICY,
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_SECRETS_TIMEOUT,
    DEFAULT_STATE_DIR,
    DEFAULT_SWITCH_TIMEOUT,
    DEFAULT_TEST_TIMEOUT,
    ENV_FILE,
    ENV_PREFIX,
    FLEET_CONFIG_FILE,
)
from fleetgen.exceptions import ConfigError


class TimeoutSettings(BaseModel):
    """Per-stage timeouts in seconds"""

    lint: float = Field(DEFAULT_LINT_TIMEOUT, gt=0)
    eval: float = Field(DEFAULT_EVAL_TIMEOUT, gt=0)
    test: float = Field(DEFAULT_TEST_TIMEOUT, gt=0)
    build: float = Field(DEFAULT_BUILD_TIMEOUT, gt=0)
    secrets: float = Field(DEFAULT_SECRETS_TIMEOUT, gt=0)
    switch: float = Field(DEFAULT_SWITCH_TIMEOUT, gt=0)
    probe: float = Field(DEFAULT_PROBE_TIMEOUT, gt=0)


class CommandSettings(BaseModel):
    """
    Shell command templates for the external adapters.

    Placeholders: {host}, {platform}, {config_ref}, {graph}, {artifact},
    {hash}, {generation}, {source}, {secrets_dir}. Substituted values are
    shell-quoted.
    """

    lint: Optional[str] = None
    eval: Optional[str] = None
    build: Optional[str] = None
    switch: Optional[str] = None
    probe: Optional[str] = None
    decrypt: Optional[str] = None


class SecretSettings(BaseModel):
    """Where decrypted secrets live while a scope is open"""

    runtime_dir: Optional[str] = None


class FleetSettings(BaseModel):
    """Validated contents of fleet.yml"""

    state_dir: str = DEFAULT_STATE_DIR
    log_dir: str = DEFAULT_LOG_DIR
    strict_lint: bool = False
    default_policy: str = DEFAULT_POLICY
    default_concurrency: int = Field(DEFAULT_CONCURRENCY, ge=1)
    timeouts: TimeoutSettings = Field(default_factory=TimeoutSettings)
    commands: CommandSettings = Field(default_factory=CommandSettings)
    secrets: SecretSettings = Field(default_factory=SecretSettings)

    @field_validator("default_policy")
    @classmethod
    def _known_policy(cls, value: str) -> str:
        if value not in ("abort", "continue"):
            raise ValueError(f"must be 'abort' or 'continue', got '{value}'")
        return value


class FleetConfig:
    """Represents a loaded and validated fleet workspace configuration"""

    def __init__(self, root: Path, settings: FleetSettings):
        self.root = Path(root)
        self.settings = settings

    @property
    def state_dir(self) -> Path:
        return self._resolve(self.settings.state_dir)

    @property
    def log_dir(self) -> Path:
        return self._resolve(self.settings.log_dir)

    @property
    def timeouts(self) -> TimeoutSettings:
        return self.settings.timeouts

    @property
    def commands(self) -> CommandSettings:
        return self.settings.commands

    def _resolve(self, value: str) -> Path:
        path = Path(value).expanduser()
        return path if path.is_absolute() else self.root / path

    def to_dict(self) -> Dict[str, Any]:
        return self.settings.model_dump()


class ConfigLoader:
    """Loads fleet.yml, then applies .env and FLEETGEN_* overrides"""

    ENV_OVERRIDES = {
        "STATE_DIR": "state_dir",
        "LOG_DIR": "log_dir",
        "CONCURRENCY": "default_concurrency",
        "POLICY": "default_policy",
        "STRICT_LINT": "strict_lint",
    }

    def __init__(self, root: Path, environ: Optional[Dict[str, str]] = None):
        self.root = Path(root)
        self.config_path = self.root / FLEET_CONFIG_FILE
        self.environ = os.environ if environ is None else environ

    def load(self) -> FleetConfig:
        """
        Load and validate the workspace configuration

        Returns:
            FleetConfig with defaults applied

        Raises:
            ConfigError: If fleet.yml is unreadable or invalid
        """
        raw = self._read_yaml()
        raw.update(self._env_overrides())

        try:
            settings = FleetSettings(**raw)
        except ValidationError as e:
            problems = [
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in e.errors()
            ]
            raise ConfigError(
                f"Invalid configuration in {self.config_path.name}",
                context="; ".join(problems),
            )

        return FleetConfig(self.root, settings)

    def _read_yaml(self) -> Dict[str, Any]:
        if not self.config_path.exists():
            return {}

        try:
            with open(self.config_path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse {self.config_path.name}", context=str(e))

        if not isinstance(data, dict):
            raise ConfigError(
                f"Invalid {self.config_path.name}: top level must be a mapping"
            )
        return data

    def _env_overrides(self) -> Dict[str, Any]:
        """Collect overrides, process environment winning over .env"""
        values: Dict[str, Any] = {}

        env_file = self.root / ENV_FILE
        sources = []
        if env_file.exists():
            sources.append(dotenv_values(env_file))
        sources.append(self.environ)

        for source in sources:
            for suffix, field_name in self.ENV_OVERRIDES.items():
                value = source.get(f"{ENV_PREFIX}{suffix}")
                if value not in (None, ""):
                    values[field_name] = value

        return values
