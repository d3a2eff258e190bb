"""Tests for the command-backed evaluator, builder, test, switch and secret adapters."""

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from fleetgen.exceptions import ActivationError, BuildError, EvalError, SecretError
from fleetgen.models import (
    CheckOutcome,
    EvaluatedGraph,
    ExecutionResult,
    Generation,
    GenerationStatus,
    SecretRef,
)
from fleetgen.services import (
    CommandBuilder,
    CommandEvaluator,
    CommandHealthProbe,
    CommandLinter,
    CommandRunner,
    CommandSecretBackend,
    CommandSwitcher,
    HostTestRunner,
)
from fleetgen.services.builder import digest_path, parse_build_output
from fleetgen.services.command_runner import CommandTimeout, render_command
from fleetgen.services.evaluator import find_location

from conftest import content_hash


def fake_runner(returncode=0, stdout="", stderr=""):
    runner = MagicMock(spec=CommandRunner)
    runner.cwd = None
    runner.run.return_value = ExecutionResult(
        returncode=returncode, stdout=stdout, stderr=stderr
    )
    return runner


def generation(sequence=1):
    return Generation(
        host_id="web-1",
        sequence=sequence,
        content_hash=content_hash(sequence),
        artifact_path=f"/nix/store/{sequence}-system",
        status=GenerationStatus.PENDING,
        timestamp="2026-01-01T00:00:00+00:00",
    )


class TestRenderCommand:
    def test_values_are_quoted(self):
        assert render_command("nix eval {config_ref}", config_ref="a b") == "nix eval 'a b'"

    def test_unknown_placeholder(self):
        with pytest.raises(ValueError):
            render_command("deploy {nope}", host="web-1")


class TestCommandRunner:
    def test_captures_output(self):
        result = CommandRunner().run("echo hello; echo oops >&2", timeout=10)

        assert result.is_success
        assert result.stdout.strip() == "hello"
        assert result.stderr.strip() == "oops"

    def test_timeout(self):
        with pytest.raises(CommandTimeout):
            CommandRunner().run("sleep 5", timeout=0.2)

    def test_default_working_directory(self, tmp_path):
        result = CommandRunner(cwd=tmp_path).run("pwd", timeout=10)

        assert Path(result.stdout.strip()).resolve() == tmp_path.resolve()

    def test_explicit_working_directory_wins(self, tmp_path):
        other = tmp_path / "other"
        other.mkdir()

        result = CommandRunner(cwd=tmp_path).run("pwd", timeout=10, cwd=other)

        assert Path(result.stdout.strip()).resolve() == other.resolve()


class TestCommandEvaluator:
    def test_stdout_becomes_payload(self, make_host):
        runner = fake_runner(stdout='{"drv": "x"}\n')
        graph = CommandEvaluator("nix eval {config_ref}", 10, runner).evaluate(
            make_host("web-1")
        )

        assert graph.payload == '{"drv": "x"}'
        runner.run.assert_called_once_with("nix eval .#web-1", timeout=10)

    def test_failure_reports_first_error_and_location(self, make_host):
        runner = fake_runner(
            returncode=1,
            stderr="evaluating...\nerror: undefined variable 'nginxx' at hosts/web-1.nix:14:7\n",
        )

        with pytest.raises(EvalError) as exc_info:
            CommandEvaluator("nix eval {config_ref}", 10, runner).evaluate(
                make_host("web-1")
            )

        assert "undefined variable" in exc_info.value.message
        assert exc_info.value.location == "hosts/web-1.nix:14:7"
        assert exc_info.value.host_id == "web-1"

    def test_find_location_without_match(self):
        assert find_location("error: something broke") is None


class TestBuilder:
    def test_json_output(self):
        line = json.dumps({"content_hash": content_hash(7).upper(), "path": "/out"})
        artifact = parse_build_output(f"building...\n{line}\n")

        assert artifact.content_hash == content_hash(7)
        assert artifact.path == "/out"

    def test_path_output_is_digested(self, tmp_path):
        out = tmp_path / "result"
        (out / "bin").mkdir(parents=True)
        (out / "bin" / "switch").write_text("#!/bin/sh\n")

        artifact = parse_build_output(f"{out}\n")

        assert artifact.content_hash == digest_path(out)
        assert len(artifact.content_hash) == 64

    def test_relative_path_is_taken_from_build_directory(self, tmp_path):
        (tmp_path / "result").write_text("closure")

        artifact = parse_build_output("result\n", root=tmp_path)

        assert artifact.path == str(tmp_path / "result")
        assert artifact.content_hash == digest_path(tmp_path / "result")

    def test_digest_is_deterministic_and_content_sensitive(self, tmp_path):
        a = tmp_path / "a"
        b = tmp_path / "b"
        for root in (a, b):
            (root / "etc").mkdir(parents=True)
            (root / "etc" / "motd").write_text("hello")
        assert digest_path(a) == digest_path(b)

        (b / "etc" / "motd").write_text("goodbye")
        assert digest_path(a) != digest_path(b)

    @pytest.mark.parametrize(
        "stdout",
        [
            "",
            '{"content_hash": "abc", "path": "/out"}',
            '{"path": "/out"}',
            "/definitely/not/a/real/path",
        ],
    )
    def test_unusable_output(self, stdout):
        with pytest.raises(BuildError):
            parse_build_output(stdout)

    def test_failure_names_step(self):
        runner = fake_runner(
            returncode=1,
            stderr="error: builder for '/nix/store/abc-nginx.drv' failed with exit code 2\n",
        )
        graph = EvaluatedGraph("web-1", ".#web-1", payload="drv")

        with pytest.raises(BuildError) as exc_info:
            CommandBuilder("nix build", 10, runner).build(graph)

        assert exc_info.value.failed_step == "/nix/store/abc-nginx.drv"

    def test_timeout(self):
        runner = MagicMock(spec=CommandRunner)
        runner.run.side_effect = CommandTimeout("nix build", 1)

        with pytest.raises(BuildError) as exc_info:
            CommandBuilder("nix build", 1, runner).build(EvaluatedGraph("web-1", ".#web-1"))
        assert exc_info.value.failed_step == "timeout"


class TestHostTests:
    def test_no_tests_declared(self, make_host):
        outcome, diagnostics = HostTestRunner(10).run_tests(make_host("web-1"))

        assert outcome == CheckOutcome.PASS

    def test_stops_at_first_failure(self, make_host, tmp_path):
        marker = tmp_path / "third-ran"
        host = make_host("web-1", tests=("true", "false", f"touch {marker}"))

        outcome, diagnostics = HostTestRunner(10).run_tests(host)

        assert outcome == CheckOutcome.FAIL
        assert "false: exited with code 1" in diagnostics
        assert not marker.exists()

    def test_environment_names_the_host(self, make_host):
        host = make_host("web-1", tests=('test "$FLEETGEN_HOST" = web-1',))

        outcome, _ = HostTestRunner(10).run_tests(host)

        assert outcome == CheckOutcome.PASS

    def test_each_test_gets_a_fresh_scratch_directory(self, make_host, tmp_path):
        host = make_host(
            "web-1",
            tests=('touch "$TMPDIR/state"', 'test ! -e "$TMPDIR/state"', 'test "$HOME" = "$TMPDIR"'),
        )

        outcome, diagnostics = HostTestRunner(10, root=tmp_path).run_tests(host)

        assert outcome == CheckOutcome.PASS, diagnostics
        assert list(tmp_path.iterdir()) == []

    def test_relative_script_runs_from_workspace(self, make_host, tmp_path):
        script = tmp_path / "tests" / "smoke.sh"
        script.parent.mkdir()
        script.write_text('#!/bin/sh\ntest "$1" = web-1\n')
        script.chmod(0o755)
        host = make_host("web-1", tests=("./tests/smoke.sh {host}",))

        outcome, diagnostics = HostTestRunner(10, root=tmp_path).run_tests(host)

        assert outcome == CheckOutcome.PASS, diagnostics


class TestLinter:
    def test_findings_on_failure(self, make_host):
        runner = fake_runner(returncode=1, stdout="a.nix:1: unused\n\n")

        outcome, findings = CommandLinter("statix check", 10, runner).lint(make_host("web-1"))

        assert outcome == CheckOutcome.FAIL
        assert findings == ["a.nix:1: unused"]


class TestSwitchAndProbe:
    def test_switch_renders_generation(self, make_host):
        runner = fake_runner()

        CommandSwitcher("activate {host} {generation} {artifact}", 10, runner).switch(
            make_host("web-1"), generation(3)
        )

        runner.run.assert_called_once_with(
            "activate web-1 3 /nix/store/3-system", timeout=10
        )

    def test_switch_failure(self, make_host):
        runner = fake_runner(returncode=4, stderr="unit nginx.service failed\n")

        with pytest.raises(ActivationError) as exc_info:
            CommandSwitcher("activate", 10, runner).switch(make_host("web-1"), generation())
        assert "nginx.service" in exc_info.value.context

    def test_probe_timeout_is_unhealthy(self, make_host):
        runner = MagicMock(spec=CommandRunner)
        runner.run.side_effect = CommandTimeout("curl", 1)

        assert CommandHealthProbe("curl", 1, runner).probe(make_host("web-1"), generation()) is False


class TestSecretBackend:
    def ref(self, source="secrets/db.enc"):
        return SecretRef(name="db-password", source=source, host_id="db-1")

    def test_missing_source(self, tmp_path):
        backend = CommandSecretBackend("cat {source}", 10, tmp_path)

        with pytest.raises(SecretError) as exc_info:
            backend.decrypt(self.ref())
        assert exc_info.value.kind == SecretError.NOT_FOUND

    def test_decrypts_relative_to_root(self, tmp_path):
        (tmp_path / "secrets").mkdir()
        (tmp_path / "secrets" / "db.enc").write_bytes(b"s3cret")

        backend = CommandSecretBackend("cat {source}", 10, tmp_path)

        assert backend.decrypt(self.ref()) == b"s3cret"

    def test_command_failure(self, tmp_path):
        (tmp_path / "secrets").mkdir()
        (tmp_path / "secrets" / "db.enc").write_bytes(b"x")
        backend = CommandSecretBackend("exit 1", 10, tmp_path)

        with pytest.raises(SecretError) as exc_info:
            backend.decrypt(self.ref())
        assert exc_info.value.kind == SecretError.DECRYPTION_FAILED
