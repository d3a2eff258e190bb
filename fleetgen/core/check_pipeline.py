"""Check pipeline - lint, eval and test stages per host"""

from typing import Callable, List, Optional

from fleetgen.exceptions import EvalError
from fleetgen.models import (
    CheckOutcome,
    CheckReport,
    CheckResult,
    CheckStage,
    Host,
)
from fleetgen.services.checks import HostTestRunner, Linter, NoopLinter
from fleetgen.services.evaluator import EvaluatorAdapter


class CheckPipeline:
    """
    Runs the fixed stage sequence for one host:

    1. lint - advisory, blocks only in strict mode
    2. eval - full resolution without building, first error stops it
    3. test - host-declared tests, skipped when eval did not pass

    Results are host-local; the pipeline holds no per-host state, so one
    instance is shared by every worker.
    """

    def __init__(
        self,
        evaluator: EvaluatorAdapter,
        test_runner: HostTestRunner,
        linter: Optional[Linter] = None,
        strict: bool = False,
        logger=None,
    ):
        self.evaluator = evaluator
        self.test_runner = test_runner
        self.linter = linter or NoopLinter()
        self.strict = strict
        self.logger = logger

    def run(
        self,
        host: Host,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> List[CheckResult]:
        """Run all stages for a host and return their results in order"""
        return self.check(host, should_stop=should_stop).results

    def check(
        self,
        host: Host,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> CheckReport:
        """
        Run all stages for a host.

        Args:
            host: Host to check
            should_stop: Polled between stages; True stops before the next one

        Returns:
            CheckReport with results and the evaluated graph (if eval passed)
        """
        report = CheckReport(host_id=host.id, strict=self.strict)

        report.results.append(self._lint(host))
        if should_stop and should_stop():
            return report

        eval_result, graph = self._eval(host)
        report.results.append(eval_result)
        report.graph = graph
        if not eval_result.passed:
            # Nothing to test without a resolved graph
            return report
        if should_stop and should_stop():
            return report

        report.results.append(self._test(host, graph))
        return report

    def _lint(self, host: Host) -> CheckResult:
        try:
            outcome, diagnostics = self.linter.lint(host)
        except Exception as e:
            outcome, diagnostics = CheckOutcome.ERROR, [f"{type(e).__name__}: {e}"]

        result = CheckResult(host.id, CheckStage.LINT, outcome, tuple(diagnostics))
        self._log(result)
        return result

    def _eval(self, host: Host):
        try:
            graph = self.evaluator.evaluate(host)
        except EvalError as e:
            diagnostics = [e.message]
            if e.location:
                diagnostics.append(f"at {e.location}")
            result = CheckResult(
                host.id, CheckStage.EVAL, CheckOutcome.FAIL, tuple(diagnostics)
            )
            self._log(result)
            return result, None
        except Exception as e:
            result = CheckResult(
                host.id,
                CheckStage.EVAL,
                CheckOutcome.ERROR,
                (f"{type(e).__name__}: {e}",),
            )
            self._log(result)
            return result, None

        result = CheckResult(host.id, CheckStage.EVAL, CheckOutcome.PASS)
        self._log(result)
        return result, graph

    def _test(self, host: Host, graph) -> CheckResult:
        try:
            outcome, diagnostics = self.test_runner.run_tests(host, graph)
        except Exception as e:
            outcome, diagnostics = CheckOutcome.ERROR, [f"{type(e).__name__}: {e}"]

        result = CheckResult(host.id, CheckStage.TEST, outcome, tuple(diagnostics))
        self._log(result)
        return result

    def _log(self, result: CheckResult) -> None:
        if not self.logger:
            return
        level = "INFO"
        if not result.passed:
            advisory = result.stage == CheckStage.LINT and not self.strict
            level = "WARNING" if advisory else "ERROR"
        self.logger.log_host(
            result.host_id, f"{result.stage.value}: {result.outcome.value}", level
        )
        for line in result.diagnostics:
            self.logger.log_host(result.host_id, f"  {line}", "DEBUG")
