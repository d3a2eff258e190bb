"""Tests for loading and validating hosts.yml."""

import pytest

from fleetgen.core import HostRegistry
from fleetgen.exceptions import ConfigError, HostNotFoundError
from fleetgen.models import PlatformKind


def write_hosts(root, text):
    (root / "hosts.yml").write_text(text)
    return HostRegistry(root)


class TestLoad:
    def test_mapping_form(self, tmp_path):
        registry = write_hosts(
            tmp_path,
            """
hosts:
  web-1:
    platform: nixos
    config: .#web-1
    tests:
      - ./smoke.sh {host}
    secrets:
      - name: tls-key
        source: secrets/tls.enc
        owner: nginx
        mode: "0440"
  mac-1:
    platform: darwin
    config: .#mac-1
    reachable: false
""",
        )

        hosts = registry.load()

        assert [h.id for h in hosts] == ["web-1", "mac-1"]
        web = hosts[0]
        assert web.platform == PlatformKind.NIXOS
        assert web.tests == ("./smoke.sh {host}",)
        assert web.secrets[0].owner == "nginx"
        assert web.secrets[0].mode == 0o440
        assert web.secrets[0].host_id == "web-1"
        assert hosts[1].reachable is False

    def test_list_form(self, tmp_path):
        registry = write_hosts(
            tmp_path,
            """
hosts:
  - id: a
    platform: generic-linux
    config: hosts/a.nix
  - id: b
    platform: home-manager
    config: .#b
""",
        )

        assert registry.host_ids() == ["a", "b"]

    def test_unreachable_is_a_warning(self, tmp_path):
        registry = write_hosts(
            tmp_path,
            "hosts:\n  a: {platform: nixos, config: .#a, reachable: false}\n",
        )

        result = registry.validate()
        assert result.is_valid
        assert result.warnings


class TestValidate:
    @pytest.mark.parametrize(
        "text, fragment",
        [
            ("hosts:\n  a: {platform: nixos, config: x}\n  a: {platform: nixos, config: y}\n", "duplicate"),
            ("hosts:\n  - {id: a, platform: nixos, config: x}\n  - {id: a, platform: nixos, config: y}\n", "Duplicate host id"),
            ("hosts:\n  a: {platform: windows, config: x}\n", "unknown platform"),
            ("hosts:\n  a: {platform: nixos}\n", "missing 'config'"),
            ("hosts:\n  a: {platform: nixos, config: x, secrets: [{source: s}]}\n", "need a 'name'"),
            ("hosts:\n  a: {platform: nixos, config: x, secrets: [{name: k}]}\n", "no 'source'"),
            ("hosts:\n  a: {platform: nixos, config: x, secrets: [{name: k, source: s, mode: 'rw'}]}\n", "invalid mode"),
            ("hosts:\n  ../etc: {platform: nixos, config: x}\n", "must match"),
            ("hosts: {}\n", "No hosts"),
        ],
    )
    def test_invalid_catalog(self, tmp_path, text, fragment):
        registry = write_hosts(tmp_path, text)

        with pytest.raises(ConfigError) as exc_info:
            registry.load()
        assert fragment in exc_info.value.format_message()

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            HostRegistry(tmp_path).load()

    def test_unparseable_file(self, tmp_path):
        registry = write_hosts(tmp_path, "hosts: [unclosed\n")

        with pytest.raises(ConfigError):
            registry.load()


class TestSelect:
    @pytest.fixture
    def registry(self, tmp_path):
        return write_hosts(
            tmp_path,
            "hosts:\n"
            "  a: {platform: nixos, config: .#a}\n"
            "  b: {platform: nixos, config: .#b}\n"
            "  c: {platform: nixos, config: .#c}\n",
        )

    def test_empty_selection_is_everything(self, registry):
        assert [h.id for h in registry.select([])] == ["a", "b", "c"]

    def test_keeps_given_order_without_repeats(self, registry):
        assert [h.id for h in registry.select(["c", "a", "c"])] == ["c", "a"]

    def test_unknown_host(self, registry):
        with pytest.raises(HostNotFoundError) as exc_info:
            registry.select(["a", "zz"])
        assert "a, b, c" in exc_info.value.context
        assert isinstance(exc_info.value, ConfigError)
