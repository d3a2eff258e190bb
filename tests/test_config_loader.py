"""Tests for fleet.yml loading and environment overrides."""

import pytest

from fleetgen.constants import DEFAULT_CONCURRENCY, DEFAULT_POLICY
from fleetgen.core import ConfigLoader
from fleetgen.exceptions import ConfigError


class TestConfigLoader:
    def test_defaults_without_file(self, tmp_path):
        config = ConfigLoader(tmp_path, environ={}).load()

        assert config.settings.default_concurrency == DEFAULT_CONCURRENCY
        assert config.settings.default_policy == DEFAULT_POLICY
        assert config.state_dir == tmp_path / ".fleetgen" / "state"
        assert config.commands.eval is None

    def test_values_from_file(self, tmp_path):
        (tmp_path / "fleet.yml").write_text(
            "state_dir: /var/lib/fleetgen\n"
            "default_policy: abort\n"
            "timeouts:\n"
            "  build: 90\n"
            "commands:\n"
            "  eval: nix eval {config_ref}\n"
        )

        config = ConfigLoader(tmp_path, environ={}).load()

        assert str(config.state_dir) == "/var/lib/fleetgen"
        assert config.settings.default_policy == "abort"
        assert config.timeouts.build == 90
        assert config.timeouts.probe > 0
        assert config.commands.eval == "nix eval {config_ref}"

    def test_env_file_then_process_environment(self, tmp_path):
        (tmp_path / "fleet.yml").write_text("default_concurrency: 2\n")
        (tmp_path / ".env").write_text("FLEETGEN_CONCURRENCY=6\nFLEETGEN_POLICY=abort\n")

        config = ConfigLoader(tmp_path, environ={"FLEETGEN_CONCURRENCY": "9"}).load()

        assert config.settings.default_concurrency == 9
        assert config.settings.default_policy == "abort"

    def test_strict_lint_from_environment(self, tmp_path):
        config = ConfigLoader(tmp_path, environ={"FLEETGEN_STRICT_LINT": "true"}).load()

        assert config.settings.strict_lint is True

    @pytest.mark.parametrize(
        "text",
        [
            "default_policy: sometimes\n",
            "default_concurrency: 0\n",
            "timeouts:\n  build: -1\n",
            "- just\n- a list\n",
            "state_dir: [unclosed\n",
        ],
    )
    def test_invalid_configuration(self, tmp_path, text):
        (tmp_path / "fleet.yml").write_text(text)

        with pytest.raises(ConfigError):
            ConfigLoader(tmp_path, environ={}).load()
