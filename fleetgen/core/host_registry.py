"""Host registry - static catalog of fleet hosts loaded from hosts.yml"""

import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import yaml
from yaml.constructor import ConstructorError

from fleetgen.constants import DEFAULT_SECRET_MODE, HOSTS_FILE
from fleetgen.exceptions import ConfigError, HostNotFoundError
from fleetgen.models import Host, PlatformKind, SecretRef, ValidationResult

# Host ids and secret names become file names
NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class UniqueKeyLoader(yaml.SafeLoader):
    """SafeLoader that rejects duplicate mapping keys instead of keeping the last"""

    def construct_mapping(self, node, deep=False):
        seen = set()
        for key_node, _value_node in node.value:
            key = self.construct_object(key_node, deep=deep)
            if key in seen:
                raise ConstructorError(
                    "while constructing a mapping",
                    node.start_mark,
                    f"found duplicate key '{key}' (duplicate host id?)",
                    key_node.start_mark,
                )
            seen.add(key)
        return super().construct_mapping(node, deep=deep)


class HostRegistry:
    """
    Loads and validates the host catalog.

    Expected layout of hosts.yml:

        hosts:
          web-1:
            platform: nixos
            config: .#nixosConfigurations.web-1
            reachable: true
            tests:
              - ./tests/smoke.sh web-1
            secrets:
              - name: db-password
                source: secrets/db.enc
                owner: postgres
                mode: "0400"

    Host order is the declaration order. The registry never writes.
    """

    def __init__(self, root: Path, hosts_file: str = HOSTS_FILE):
        self.root = Path(root)
        self.hosts_path = self.root / hosts_file
        self._raw: Optional[Dict[str, Any]] = None
        self._hosts: Optional[List[Host]] = None

    def _read(self) -> Dict[str, Any]:
        if self._raw is not None:
            return self._raw

        if not self.hosts_path.exists():
            raise ConfigError(
                f"Host registry not found: {self.hosts_path}",
                context=f"Create {self.hosts_path.name} with a 'hosts' mapping",
            )

        try:
            with open(self.hosts_path, "r") as f:
                data = yaml.load(f, Loader=UniqueKeyLoader) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse {self.hosts_path.name}", context=str(e))

        hosts = data.get("hosts") if isinstance(data, dict) else None
        if not isinstance(hosts, (dict, list)):
            raise ConfigError(
                f"Invalid {self.hosts_path.name}: missing 'hosts' mapping"
            )

        self._raw = data
        return data

    def _entries(self) -> List[tuple]:
        """Host entries as (id, data) pairs, keeping list-form duplicates visible"""
        hosts = self._read()["hosts"]
        if isinstance(hosts, dict):
            return [(str(host_id), data or {}) for host_id, data in hosts.items()]

        entries = []
        for index, item in enumerate(hosts):
            if not isinstance(item, dict) or "id" not in item:
                entries.append((f"<entry {index}>", item))
            else:
                entries.append((str(item["id"]), item))
        return entries

    def validate(self) -> ValidationResult:
        """
        Validate the catalog.

        Returns:
            ValidationResult (valid)

        Raises:
            ConfigError: On duplicate ids, unknown platforms or malformed entries
        """
        result = ValidationResult()
        seen = set()

        for host_id, data in self._entries():
            if host_id in seen:
                result.add_error(f"Duplicate host id '{host_id}'")
                continue
            seen.add(host_id)

            if not NAME_PATTERN.match(host_id):
                result.add_error(
                    f"Host id '{host_id}' must match {NAME_PATTERN.pattern}"
                )

            if not isinstance(data, dict):
                result.add_error(f"Host '{host_id}': entry must be a mapping")
                continue

            platform = data.get("platform")
            if platform not in PlatformKind.values():
                result.add_error(
                    f"Host '{host_id}': unknown platform kind '{platform}' "
                    f"(expected one of: {', '.join(PlatformKind.values())})"
                )

            if not data.get("config"):
                result.add_error(f"Host '{host_id}': missing 'config' reference")

            tests = data.get("tests", [])
            if not isinstance(tests, list) or not all(
                isinstance(t, str) for t in tests
            ):
                result.add_error(f"Host '{host_id}': 'tests' must be a list of commands")

            for error in self._validate_secrets(host_id, data.get("secrets", [])):
                result.add_error(error)

            if data.get("reachable", True) is False:
                result.add_warning(f"Host '{host_id}' is marked unreachable")

        if not seen:
            result.add_error("No hosts declared")

        if result.has_errors:
            raise ConfigError(
                f"Invalid host registry ({len(result.errors)} error(s))",
                context="\n".join(result.errors),
            )
        return result

    def _validate_secrets(self, host_id: str, secrets: Any) -> List[str]:
        errors = []
        if not isinstance(secrets, list):
            return [f"Host '{host_id}': 'secrets' must be a list"]

        names = set()
        for secret in secrets:
            if not isinstance(secret, dict) or not secret.get("name"):
                errors.append(f"Host '{host_id}': secret entries need a 'name'")
                continue
            name = secret["name"]
            if not isinstance(name, str) or not NAME_PATTERN.match(name):
                errors.append(
                    f"Host '{host_id}': secret name '{name}' must match "
                    f"{NAME_PATTERN.pattern}"
                )
                continue
            if name in names:
                errors.append(f"Host '{host_id}': duplicate secret '{name}'")
            names.add(name)
            if not secret.get("source"):
                errors.append(f"Host '{host_id}': secret '{name}' has no 'source'")
            try:
                _parse_mode(secret.get("mode", DEFAULT_SECRET_MODE))
            except ValueError:
                errors.append(
                    f"Host '{host_id}': secret '{name}' has invalid mode "
                    f"'{secret.get('mode')}'"
                )
        return errors

    def load(self) -> List[Host]:
        """
        Load the validated, ordered host list.

        Raises:
            ConfigError: If the catalog is invalid
        """
        if self._hosts is not None:
            return self._hosts

        self.validate()

        hosts = []
        for host_id, data in self._entries():
            secrets = tuple(
                SecretRef(
                    name=secret["name"],
                    source=str(secret["source"]),
                    host_id=host_id,
                    owner=secret.get("owner"),
                    mode=_parse_mode(secret.get("mode", DEFAULT_SECRET_MODE)),
                )
                for secret in data.get("secrets", [])
            )
            hosts.append(
                Host(
                    id=host_id,
                    platform=PlatformKind(data["platform"]),
                    config_ref=str(data["config"]),
                    reachable=bool(data.get("reachable", True)),
                    tests=tuple(data.get("tests", [])),
                    secrets=secrets,
                )
            )

        self._hosts = hosts
        return hosts

    def host_ids(self) -> List[str]:
        return [host.id for host in self.load()]

    def get(self, host_id: str) -> Host:
        """
        Get a host by id.

        Raises:
            HostNotFoundError: If the host is not registered
        """
        for host in self.load():
            if host.id == host_id:
                return host
        raise HostNotFoundError(host_id, self.host_ids())

    def select(self, host_ids: Iterable[str]) -> List[Host]:
        """
        Resolve command-line host names, keeping the given order.

        An empty selection means every registered host.
        """
        wanted = list(host_ids)
        if not wanted:
            return list(self.load())

        selected = []
        for host_id in wanted:
            host = self.get(host_id)
            if host not in selected:
                selected.append(host)
        return selected


def _parse_mode(value: Any) -> int:
    """Accept 0o400, 256 or "0400" style permission modes"""
    if isinstance(value, bool):
        raise ValueError(value)
    if isinstance(value, int):
        mode = value
    else:
        mode = int(str(value), 8)
    if not 0 <= mode <= 0o777:
        raise ValueError(value)
    return mode
