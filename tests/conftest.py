"""
Shared pytest fixtures for fleetgen tests.

This module provides:
- In-memory adapters standing in for evaluator, builder, switch, probe and
  secret tooling
- Host and artifact factories
- Temporary workspaces with fleet.yml / hosts.yml
- A wired DeploymentOrchestrator over the fakes

Usage:
    def test_something(make_orchestrator, make_host):
        orchestrator = make_orchestrator([make_host("web-1")])
"""

import threading
import time
from pathlib import Path
from typing import Dict, Optional

import pytest
import yaml

from fleetgen.core import CheckPipeline, GenerationStore, SecretResolver
from fleetgen.core.orchestrator import DeploymentOrchestrator
from fleetgen.exceptions import ActivationError, BuildError, EvalError, SecretError
from fleetgen.models import (
    Artifact,
    CheckOutcome,
    EvaluatedGraph,
    Host,
    PlatformKind,
    SecretRef,
)
from fleetgen.services import BuilderAdapter, EvaluatorAdapter, HealthProbe, SecretBackend, Switcher


def content_hash(n: int) -> str:
    """Deterministic valid content hash for test artifacts."""
    return f"{n:064x}"


# =============================================================================
# Fake adapters
# =============================================================================


class FakeEvaluator(EvaluatorAdapter):
    def __init__(self):
        self.failures: Dict[str, EvalError] = {}
        self.calls = []

    def evaluate(self, host: Host) -> EvaluatedGraph:
        self.calls.append(host.id)
        if host.id in self.failures:
            raise self.failures[host.id]
        return EvaluatedGraph(host.id, host.config_ref, payload=f"graph:{host.id}")


class FakeTestRunner:
    def __init__(self):
        self.failures: Dict[str, str] = {}

    def run_tests(self, host: Host, graph=None):
        if host.id in self.failures:
            return CheckOutcome.FAIL, [self.failures[host.id]]
        return CheckOutcome.PASS, []


class FakeBuilder(BuilderAdapter):
    """Builds one artifact file per host; hashes are set per host."""

    def __init__(self, artifact_dir: Path):
        self.artifact_dir = artifact_dir
        self.hashes: Dict[str, str] = {}
        self.failures: Dict[str, BuildError] = {}
        self.delays: Dict[str, float] = {}
        self.started: Dict[str, threading.Event] = {}
        self.release: Optional[threading.Event] = None
        self.calls = []
        self._lock = threading.Lock()

    def build(self, graph: EvaluatedGraph) -> Artifact:
        host_id = graph.host_id
        with self._lock:
            self.calls.append(host_id)
            self.started.setdefault(host_id, threading.Event()).set()
        if host_id in self.delays:
            time.sleep(self.delays[host_id])
        if host_id in self.failures:
            raise self.failures[host_id]
        if self.release is not None:
            self.release.wait(5)

        digest = self.hashes.get(host_id, content_hash(1))
        path = self.artifact_dir / f"{host_id}-{digest[-8:]}"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(digest)
        return Artifact(content_hash=digest, path=str(path))


class FakeSwitcher(Switcher):
    def __init__(self):
        self.failures: Dict[str, str] = {}
        self.calls = []
        self.secret_snapshots = []
        self._lock = threading.Lock()

    def switch(self, host, generation, secrets=()):
        with self._lock:
            self.calls.append((host.id, generation.sequence))
            self.secret_snapshots.append(
                {s.name: s.path.read_bytes() for s in secrets}
            )
        if host.id in self.failures:
            raise ActivationError(self.failures[host.id], host_id=host.id)


class FakeProbe(HealthProbe):
    def __init__(self):
        self.unhealthy = set()
        self.delays: Dict[str, float] = {}

    def probe(self, host, generation) -> bool:
        if host.id in self.delays:
            time.sleep(self.delays[host.id])
        return host.id not in self.unhealthy


class FakeSecretBackend(SecretBackend):
    def __init__(self):
        self.missing = set()

    def decrypt(self, ref: SecretRef) -> bytes:
        if ref.name in self.missing:
            raise SecretError(SecretError.NOT_FOUND, ref.name, host_id=ref.host_id)
        return f"plaintext-{ref.name}".encode()


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def make_host():
    def _make(host_id: str, **kwargs) -> Host:
        kwargs.setdefault("platform", PlatformKind.NIXOS)
        kwargs.setdefault("config_ref", f".#{host_id}")
        return Host(id=host_id, **kwargs)

    return _make


@pytest.fixture
def store(tmp_path) -> GenerationStore:
    return GenerationStore(tmp_path / "state")


@pytest.fixture
def make_artifact(tmp_path):
    """Artifact whose path exists on disk."""

    def _make(n: int) -> Artifact:
        path = tmp_path / "artifacts" / f"artifact-{n}"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(str(n))
        return Artifact(content_hash=content_hash(n), path=str(path))

    return _make


@pytest.fixture
def fakes(tmp_path):
    """Bundle of fake adapters shared by one test."""

    class Fakes:
        evaluator = FakeEvaluator()
        tests = FakeTestRunner()
        builder = FakeBuilder(tmp_path / "artifacts")
        switcher = FakeSwitcher()
        probe = FakeProbe()
        secrets = FakeSecretBackend()

    return Fakes()


@pytest.fixture
def runtime_dir(tmp_path) -> Path:
    path = tmp_path / "runtime"
    path.mkdir()
    return path


@pytest.fixture
def make_orchestrator(fakes, store, runtime_dir):
    def _make(
        hosts, strict: bool = False, cancel_event=None, timeouts=None
    ) -> DeploymentOrchestrator:
        return DeploymentOrchestrator(
            hosts=hosts,
            checks=CheckPipeline(fakes.evaluator, fakes.tests, strict=strict),
            builder=fakes.builder,
            store=store,
            resolver=SecretResolver(fakes.secrets, runtime_dir=runtime_dir),
            switcher=fakes.switcher,
            probe=fakes.probe,
            timeouts=timeouts,
            cancel_event=cancel_event,
        )

    return _make


# =============================================================================
# Workspaces
# =============================================================================


@pytest.fixture
def workspace(tmp_path):
    """
    Workspace directory with a two-host hosts.yml and a fleet.yml whose
    commands are plain shell one-liners. The build command prints the
    path of a prebuilt artifact file.
    """
    root = tmp_path / "workspace"
    root.mkdir()

    hosts = {
        "hosts": {
            "web-1": {"platform": "nixos", "config": ".#web-1"},
            "db-1": {"platform": "generic-linux", "config": "hosts/db-1.nix"},
        }
    }
    (root / "hosts.yml").write_text(yaml.safe_dump(hosts, sort_keys=False))

    artifact = root / "artifacts" / "system"
    artifact.parent.mkdir()
    artifact.write_text("system closure")

    fleet = {
        "state_dir": "state",
        "log_dir": "logs",
        "commands": {
            "eval": "echo evaluated {host}",
            "build": f"echo {artifact}",
            "switch": "true",
        },
    }
    (root / "fleet.yml").write_text(yaml.safe_dump(fleet, sort_keys=False))
    return root
