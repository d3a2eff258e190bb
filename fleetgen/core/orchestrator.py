"""
Deployment orchestrator - drives hosts from check to live generation

One worker drives one host end to end:

    check -> build -> (hash differs from active?) -> secrets + record +
    activate -> health probe

Hosts run on a bounded thread pool. The failure policy decides whether a
host failure stops new hosts from being scheduled. Cancellation is an
Event polled between stages; an activation that has started always
finishes or is closed as a failed attempt.
"""

import threading
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Dict, Iterable, List, Optional

from fleetgen.core.check_pipeline import CheckPipeline
from fleetgen.core.config_loader import TimeoutSettings
from fleetgen.core.generation_store import GenerationStore
from fleetgen.core.secret_resolver import SecretResolver
from fleetgen.exceptions import (
    ActivationError,
    BuildError,
    HostNotFoundError,
    SecretError,
)
from fleetgen.models import (
    Artifact,
    CheckReport,
    DeploymentOutcome,
    DeploymentPlan,
    Generation,
    Host,
    HostOutcome,
    HostResult,
    RollbackPolicy,
)
from fleetgen.services.builder import BuilderAdapter
from fleetgen.services.switcher import HealthProbe, NoopHealthProbe, Switcher
from fleetgen.utils import call_with_timeout

# Outcome for an unexpected exception, by the stage it escaped from
STAGE_FAILURES = {
    "check": HostOutcome.CHECKED_FAILED,
    "build": HostOutcome.BUILD_FAILED,
    "secrets": HostOutcome.ACTIVATION_FAILED,
    "activation": HostOutcome.ACTIVATION_FAILED,
    "probe": HostOutcome.UNVERIFIED,
}


class DeploymentOrchestrator:
    """
    Runs deployment plans over a set of hosts.

    Usage:
        orchestrator = DeploymentOrchestrator(hosts, checks, builder, store,
                                              resolver, switcher)
        outcome = orchestrator.run(DeploymentPlan(hosts=("web-1", "db-1")))
        sys.exit(outcome.exit_code)
    """

    def __init__(
        self,
        hosts: Iterable[Host],
        checks: Optional[CheckPipeline],
        builder: Optional[BuilderAdapter],
        store: GenerationStore,
        resolver: SecretResolver,
        switcher: Switcher,
        probe: Optional[HealthProbe] = None,
        timeouts: Optional[TimeoutSettings] = None,
        logger=None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.hosts: Dict[str, Host] = {host.id: host for host in hosts}
        self.checks = checks
        self.builder = builder
        self.store = store
        self.resolver = resolver
        self.switcher = switcher
        self.probe = probe or NoopHealthProbe()
        self.timeouts = timeouts or TimeoutSettings()
        self.logger = logger
        self.cancel_event = cancel_event or threading.Event()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Stop scheduling hosts and stop running hosts at their next stage"""
        if not self.cancel_event.is_set():
            self._log("Cancellation requested; finishing in-flight stages", "WARNING")
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def host(self, host_id: str) -> Host:
        try:
            return self.hosts[host_id]
        except KeyError:
            raise HostNotFoundError(host_id, list(self.hosts))

    def _log(self, message: str, level: str = "INFO") -> None:
        if self.logger:
            self.logger.log(message, level)

    def _host_log(self, host_id: str, message: str, level: str = "INFO") -> None:
        if self.logger:
            self.logger.log_host(host_id, message, level)

    # ------------------------------------------------------------------
    # Fleet runs
    # ------------------------------------------------------------------

    def run(self, plan: DeploymentPlan) -> DeploymentOutcome:
        """
        Execute a deployment plan.

        Args:
            plan: Hosts, concurrency, failure policy and flags

        Returns:
            DeploymentOutcome with one HostResult per planned host, in plan order

        Raises:
            HostNotFoundError: If the plan names an unknown host (before any work)
        """
        hosts = [self.host(host_id) for host_id in plan.hosts]
        self._log(
            f"Deploying {len(hosts)} host(s): policy={plan.policy.value}, "
            f"concurrency={plan.concurrency}, dry_run={plan.dry_run}"
        )

        results, aborted = self._schedule(
            hosts,
            plan.concurrency,
            lambda host: self._run_host(host, plan),
            abort_on_failure=plan.policy == RollbackPolicy.ABORT,
        )

        outcome = DeploymentOutcome(aborted=aborted, cancelled=self.cancelled)
        for host in hosts:
            outcome.add(results[host.id])

        self._log(
            f"Deployment finished: {outcome.status.value}",
            "INFO" if outcome.exit_code == 0 else "WARNING",
        )
        return outcome

    def _schedule(self, hosts: List[Host], concurrency: int, work, abort_on_failure: bool):
        """
        Feed hosts to a bounded pool, at most `concurrency` in flight.

        New hosts are only submitted while the fleet is not cancelled and,
        under the abort policy, no host has failed. Hosts never submitted
        are reported as skipped.

        Returns:
            (results by host id, whether the abort policy tripped)
        """
        results: Dict[str, HostResult] = {}
        pending = deque(hosts)
        running: Dict[Future, Host] = {}
        aborted = False

        with ThreadPoolExecutor(
            max_workers=concurrency, thread_name_prefix="fleetgen-host"
        ) as pool:
            while pending or running:
                while pending and len(running) < concurrency:
                    if aborted or self.cancelled:
                        break
                    host = pending.popleft()
                    running[pool.submit(work, host)] = host

                if not running:
                    break

                try:
                    done, _ = wait(list(running), return_when=FIRST_COMPLETED)
                except KeyboardInterrupt:
                    self.cancel()
                    continue

                for future in done:
                    host = running.pop(future)
                    result = future.result()
                    results[host.id] = result
                    if abort_on_failure and result.outcome.is_failure and not aborted:
                        aborted = True
                        self._log(
                            f"Host '{host.id}' failed at {result.stage}; "
                            "no further hosts will be started",
                            "ERROR",
                        )

        reason = "fleet aborted" if aborted else "cancelled"
        for host in pending:
            results[host.id] = HostResult(
                host.id, HostOutcome.SKIPPED, diagnostics=[f"not started: {reason}"]
            )
            self._host_log(host.id, f"Skipped ({reason})", "WARNING")

        return results, aborted

    def _run_host(self, host: Host, plan: DeploymentPlan) -> HostResult:
        """Drive one host; never raises for host-level failures"""
        progress = {"stage": "check"}
        try:
            return self._pipeline(host, plan, progress)
        except Exception as e:
            stage = getattr(e, "stage", None) or progress["stage"]
            outcome = STAGE_FAILURES.get(stage, HostOutcome.ACTIVATION_FAILED)
            self._host_log(host.id, f"Unexpected error: {type(e).__name__}: {e}", "ERROR")
            return HostResult(
                host.id, outcome, stage=stage, diagnostics=[f"{type(e).__name__}: {e}"]
            )

    def _skipped(self, host: Host, stage: str) -> HostResult:
        self._host_log(host.id, f"Cancelled before {stage}", "WARNING")
        return HostResult(
            host.id, HostOutcome.SKIPPED, stage=stage, diagnostics=["cancelled"]
        )

    def _pipeline(self, host: Host, plan: DeploymentPlan, progress: dict) -> HostResult:
        # progress["stage"] names the stage an unexpected exception escaped from
        # Check
        report = self.checks.check(host, should_stop=lambda: self.cancelled)
        report.strict = report.strict or plan.strict_lint
        if not report.is_clear:
            blocking = report.blocking_result
            if blocking is None:
                return self._skipped(host, "check")
            return HostResult(
                host.id,
                HostOutcome.CHECKED_FAILED,
                stage=blocking.stage.value,
                diagnostics=list(blocking.diagnostics),
            )
        advisories = [f"lint: {line}" for line in report.advisories]

        if self.cancelled:
            return self._skipped(host, "build")

        # Build
        progress["stage"] = "build"
        try:
            artifact = self._build(host, report)
        except BuildError as e:
            diagnostics = [e.message]
            if e.failed_step:
                diagnostics.append(f"failed step: {e.failed_step}")
            return HostResult(
                host.id, HostOutcome.BUILD_FAILED, stage="build", diagnostics=diagnostics
            )

        # No-op
        progress["stage"] = "activation"
        active = self.store.active(host.id)
        if active is not None and active.content_hash == artifact.content_hash:
            self._host_log(
                host.id,
                f"Unchanged: {artifact.short_hash} is already active as #{active.sequence}",
            )
            return HostResult(
                host.id,
                HostOutcome.SUCCESS,
                generation=active.sequence,
                diagnostics=advisories + ["unchanged"],
                unchanged=True,
            )

        if plan.dry_run:
            current = f"#{active.sequence}" if active else "nothing"
            self._host_log(host.id, f"Dry run: would replace {current} with {artifact.short_hash}")
            return HostResult(
                host.id,
                HostOutcome.SUCCESS,
                diagnostics=advisories
                + [f"dry run: would activate {artifact.short_hash} (replacing {current})"],
            )

        if self.cancelled:
            return self._skipped(host, "activation")

        # Activate
        if not host.reachable:
            self._host_log(host.id, "Host is unreachable", "ERROR")
            return HostResult(
                host.id,
                HostOutcome.ACTIVATION_FAILED,
                stage="activation",
                diagnostics=["host is unreachable"],
            )

        try:
            generation = self._activate(host, artifact)
        except SecretError as e:
            return HostResult(
                host.id,
                HostOutcome.ACTIVATION_FAILED,
                stage="secrets",
                diagnostics=[e.message],
            )
        except ActivationError as e:
            return HostResult(
                host.id,
                HostOutcome.ACTIVATION_FAILED,
                stage="activation",
                generation=e.generation,
                diagnostics=[e.format_message()],
            )

        # Probe
        progress["stage"] = "probe"
        if not self._probe(host, generation):
            return HostResult(
                host.id,
                HostOutcome.UNVERIFIED,
                stage="probe",
                generation=generation.sequence,
                diagnostics=advisories + ["health probe failed"],
            )

        return HostResult(
            host.id,
            HostOutcome.SUCCESS,
            generation=generation.sequence,
            diagnostics=advisories,
        )

    def _build(self, host: Host, report: CheckReport) -> Artifact:
        self._host_log(host.id, "Building")
        try:
            artifact = call_with_timeout(
                self.builder.build, self.timeouts.build, report.graph
            )
        except BuildError as e:
            e.host_id = e.host_id or host.id
            self._host_log(host.id, f"Build failed: {e.message}", "ERROR")
            raise
        except TimeoutError as e:
            self._host_log(host.id, f"Build timed out: {e}", "ERROR")
            raise BuildError(str(e), failed_step="timeout", host_id=host.id)
        self._host_log(host.id, f"Built {artifact.short_hash}")
        return artifact

    def _activate(self, host: Host, artifact: Artifact) -> Generation:
        """Secrets exist only for the duration of the switch"""
        with self.resolver.scope(host.id) as scope:
            secrets = self.resolver.resolve(host.secrets, scope)
            generation = self.store.record(host.id, artifact)
            try:
                return self.store.activate(
                    generation,
                    switch=lambda g: self.switcher.switch(host, g, secrets),
                )
            except ActivationError as e:
                e.generation = e.generation or generation.sequence
                self._host_log(
                    host.id, f"Activation of #{generation.sequence} failed: {e.message}", "ERROR"
                )
                raise

    def _probe(self, host: Host, generation: Generation) -> bool:
        try:
            healthy = bool(
                call_with_timeout(self.probe.probe, self.timeouts.probe, host, generation)
            )
        except Exception as e:
            self._host_log(host.id, f"Health probe error: {e}", "WARNING")
            healthy = False

        if not healthy:
            self._host_log(
                host.id, f"Generation #{generation.sequence} is live but unverified", "WARNING"
            )
        return healthy

    # ------------------------------------------------------------------
    # Checks only
    # ------------------------------------------------------------------

    def check(self, host_ids: Iterable[str], concurrency: int = 1) -> Dict[str, CheckReport]:
        """Run the check pipeline for several hosts; no build, no activation"""
        hosts = [self.host(host_id) for host_id in host_ids]
        reports: Dict[str, CheckReport] = {}

        with ThreadPoolExecutor(
            max_workers=max(1, concurrency), thread_name_prefix="fleetgen-check"
        ) as pool:
            futures = {
                host.id: pool.submit(
                    self.checks.check, host, lambda: self.cancelled
                )
                for host in hosts
            }
            try:
                for host in hosts:
                    reports[host.id] = futures[host.id].result()
            except KeyboardInterrupt:
                # Running checks stop at their next stage boundary
                self.cancel()
                for future in futures.values():
                    future.cancel()
                raise

        return reports

    # ------------------------------------------------------------------
    # Rollback
    # ------------------------------------------------------------------

    def rollback(self, host_id: str, target: int) -> HostResult:
        """
        Re-activate an earlier generation of one host without rebuilding.

        Returns:
            HostResult with outcome rolled-back (or unverified if the probe fails)

        Raises:
            HostNotFoundError: Unknown host
            RollbackError: Target not eligible (nothing changed)
            SecretError, ActivationError: Switch could not run (nothing changed)
        """
        host = self.host(host_id)
        target_generation = self.store.check_rollback(host.id, target)

        if not host.reachable:
            raise ActivationError("host is unreachable", host_id=host.id)

        self._host_log(
            host.id,
            f"Rolling back to #{target} ({target_generation.artifact.short_hash})",
        )
        with self.resolver.scope(host.id) as scope:
            secrets = self.resolver.resolve(host.secrets, scope)
            generation = self.store.rollback(
                host.id,
                target,
                switch=lambda g: self.switcher.switch(host, g, secrets),
            )

        diagnostics = [f"restored #{target} as #{generation.sequence}"]
        if not self._probe(host, generation):
            return HostResult(
                host.id,
                HostOutcome.UNVERIFIED,
                stage="probe",
                generation=generation.sequence,
                diagnostics=diagnostics + ["health probe failed"],
            )
        return HostResult(
            host.id,
            HostOutcome.ROLLED_BACK,
            generation=generation.sequence,
            diagnostics=diagnostics,
        )
