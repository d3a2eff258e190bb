"""Tests for the lint -> eval -> test pipeline."""

from fleetgen.core import CheckPipeline
from fleetgen.exceptions import EvalError
from fleetgen.models import CheckOutcome, CheckStage
from fleetgen.services import Linter

from conftest import FakeEvaluator, FakeTestRunner


class FindingsLinter(Linter):
    def __init__(self, findings=None):
        self.findings = findings or []

    def lint(self, host):
        if self.findings:
            return CheckOutcome.FAIL, list(self.findings)
        return CheckOutcome.PASS, []


class ExplodingLinter(Linter):
    def lint(self, host):
        raise RuntimeError("linter crashed")


def outcomes(report):
    return [(r.stage, r.outcome) for r in report.results]


class TestCheckPipeline:
    def test_all_stages_pass(self, make_host):
        pipeline = CheckPipeline(FakeEvaluator(), FakeTestRunner(), FindingsLinter())

        report = pipeline.check(make_host("web-1"))

        assert outcomes(report) == [
            (CheckStage.LINT, CheckOutcome.PASS),
            (CheckStage.EVAL, CheckOutcome.PASS),
            (CheckStage.TEST, CheckOutcome.PASS),
        ]
        assert report.is_clear
        assert report.graph.payload == "graph:web-1"

    def test_lint_findings_are_advisory(self, make_host):
        linter = FindingsLinter(["hosts/web-1.nix:3: unused binding 'pkgs'"])
        pipeline = CheckPipeline(FakeEvaluator(), FakeTestRunner(), linter)

        report = pipeline.check(make_host("web-1"))

        assert report.is_clear
        assert report.blocking_result is None
        assert report.advisories == ["hosts/web-1.nix:3: unused binding 'pkgs'"]

    def test_strict_lint_blocks(self, make_host):
        linter = FindingsLinter(["unused binding"])
        pipeline = CheckPipeline(FakeEvaluator(), FakeTestRunner(), linter, strict=True)

        report = pipeline.check(make_host("web-1"))

        assert not report.is_clear
        assert report.blocking_result.stage == CheckStage.LINT
        assert report.advisories == []

    def test_eval_failure_skips_tests(self, make_host):
        evaluator = FakeEvaluator()
        evaluator.failures["web-1"] = EvalError(
            "undefined variable 'nginxx'", location="hosts/web-1.nix:14:7"
        )
        pipeline = CheckPipeline(evaluator, FakeTestRunner())

        report = pipeline.check(make_host("web-1"))

        assert report.get(CheckStage.TEST) is None
        assert report.graph is None
        eval_result = report.blocking_result
        assert eval_result.stage == CheckStage.EVAL
        assert eval_result.outcome == CheckOutcome.FAIL
        assert eval_result.diagnostics == (
            "undefined variable 'nginxx'",
            "at hosts/web-1.nix:14:7",
        )

    def test_test_failure_blocks(self, make_host):
        tests = FakeTestRunner()
        tests.failures["web-1"] = "port 443 closed"
        pipeline = CheckPipeline(FakeEvaluator(), tests)

        report = pipeline.check(make_host("web-1"))

        assert not report.is_clear
        assert report.blocking_result.stage == CheckStage.TEST
        assert report.blocking_result.diagnostics == ("port 443 closed",)

    def test_adapter_crash_is_an_error_outcome(self, make_host):
        pipeline = CheckPipeline(FakeEvaluator(), FakeTestRunner(), ExplodingLinter())

        report = pipeline.check(make_host("web-1"))

        lint = report.get(CheckStage.LINT)
        assert lint.outcome == CheckOutcome.ERROR
        assert "linter crashed" in lint.diagnostics[0]
        assert report.is_clear

    def test_should_stop_between_stages(self, make_host):
        evaluator = FakeEvaluator()
        pipeline = CheckPipeline(evaluator, FakeTestRunner())

        report = pipeline.check(make_host("web-1"), should_stop=lambda: True)

        assert [r.stage for r in report.results] == [CheckStage.LINT]
        assert evaluator.calls == []
        assert not report.is_clear

    def test_hosts_are_checked_independently(self, make_host):
        evaluator = FakeEvaluator()
        evaluator.failures["db-1"] = EvalError("infinite recursion")
        pipeline = CheckPipeline(evaluator, FakeTestRunner())

        assert not pipeline.check(make_host("db-1")).is_clear
        assert pipeline.check(make_host("web-1")).is_clear

    def test_run_returns_results(self, make_host):
        pipeline = CheckPipeline(FakeEvaluator(), FakeTestRunner())

        results = pipeline.run(make_host("web-1"))

        assert [r.stage for r in results] == [
            CheckStage.LINT,
            CheckStage.EVAL,
            CheckStage.TEST,
        ]
