"""fleetgen CLI - Deploy command"""

import click
from rich.markup import escape
from rich.table import Table

from fleetgen.base import FleetCommand
from fleetgen.constants import EXIT_SUCCESS
from fleetgen.exceptions import ConfigError
from fleetgen.models import DeploymentPlan, RollbackPolicy
from fleetgen.ui_components import FLEET_COLORS, OUTCOME_COLORS, styled


class DeployCommand(FleetCommand):
    """Check, build and activate new generations for hosts."""

    def __init__(
        self,
        host_ids: tuple = (),
        policy: str = None,
        concurrency: int = None,
        strict: bool = False,
        dry_run: bool = False,
        root: str = None,
        verbose: bool = False,
        json_output: bool = False,
    ):
        super().__init__(root=root, verbose=verbose, json_output=json_output)
        self.host_ids = host_ids
        self.policy = policy
        self.concurrency = concurrency
        self.strict = strict
        self.dry_run = dry_run

    def build_plan(self, host_ids) -> DeploymentPlan:
        """Merge command-line options over fleet.yml defaults."""
        settings = self.config.settings
        try:
            return DeploymentPlan(
                hosts=tuple(host_ids),
                concurrency=self.concurrency or settings.default_concurrency,
                policy=RollbackPolicy.from_option(self.policy or settings.default_policy),
                strict_lint=self.strict or settings.strict_lint,
                dry_run=self.dry_run,
            )
        except ValueError as e:
            raise ConfigError("Invalid deployment plan", context=str(e))

    def execute(self) -> None:
        """Execute deploy command."""
        hosts = self.select_hosts(self.host_ids)
        plan = self.build_plan(h.id for h in hosts)

        self.show_header(
            title="Deploy" + (" (dry run)" if plan.dry_run else ""),
            details={
                "Hosts": ", ".join(plan.hosts),
                "Policy": plan.policy.value,
                "Concurrency": plan.concurrency,
            },
        )

        logger = self.init_logger(self.config.log_dir, "fleet", "deploy")
        logger.step(f"Deploying {len(plan.hosts)} host(s)")

        orchestrator = self.build_orchestrator(hosts, strict=plan.strict_lint)
        outcome = orchestrator.run(plan)

        if self.json_output:
            data = outcome.to_dict()
            data["dry_run"] = plan.dry_run
            self.output_json(data, exit_code=outcome.exit_code)
            return

        table = Table(
            title="Deployment Results",
            title_justify="left",
            show_header=True,
            header_style="bold cyan",
            padding=(0, 1),
        )
        table.add_column("Host", style="cyan", no_wrap=True)
        table.add_column("Outcome")
        table.add_column("Generation", justify="right")
        table.add_column("Stage", style="dim")
        table.add_column("Details", style="dim")

        for result in outcome.results.values():
            generation = f"#{result.generation}" if result.generation else "-"
            details = result.diagnostics[-1] if result.diagnostics else ""
            table.add_row(
                result.host_id,
                styled(result.outcome.value, OUTCOME_COLORS[result.outcome]),
                generation,
                result.stage or "-",
                escape(details),
            )

        self.console.print(table)

        for result in outcome.failures:
            if len(result.diagnostics) > 1:
                self.console.print(f"\n[bold]{result.host_id}[/bold]")
                for line in result.diagnostics:
                    self.console.print(f"  [dim]{escape(line)}[/dim]")

        status = outcome.status
        self.console.print(
            f"\nFleet status: {styled(status.value, FLEET_COLORS[status])}"
        )
        if outcome.cancelled:
            logger.warning("Deployment cancelled by operator")
        elif outcome.exit_code == EXIT_SUCCESS:
            logger.success("Deployment complete")
        else:
            logger.warning(f"{len(outcome.failures)} host(s) did not succeed")
        self.print_log_location()

        if outcome.exit_code != EXIT_SUCCESS:
            raise SystemExit(outcome.exit_code)


@click.command(name="deploy")
@click.argument("hosts", nargs=-1)
@click.option(
    "--policy",
    type=click.Choice(["abort", "continue"]),
    default=None,
    help="On host failure: stop starting new hosts, or keep going",
)
@click.option(
    "--concurrency",
    "-c",
    type=click.IntRange(min=1),
    default=None,
    help="Hosts deployed in parallel (default from fleet.yml)",
)
@click.option("--strict", is_flag=True, help="Lint findings block the host")
@click.option("--dry-run", is_flag=True, help="Check and build only; report what would change")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
@click.pass_context
def deploy(ctx, hosts, policy, concurrency, strict, dry_run, verbose, json_output):
    """
    Build and activate new generations

    \b
    Examples:
      fleetgen deploy                          # Every host
      fleetgen deploy web-1 web-2 -c 2         # Two at a time
      fleetgen deploy --policy abort           # Stop starting hosts on first failure
      fleetgen deploy --dry-run web-1          # What would change

    \b
    Exit codes: 0 success, 1 partial failure, 2 aborted, 3 invalid invocation
    """
    cmd = DeployCommand(
        host_ids=hosts,
        policy=policy,
        concurrency=concurrency,
        strict=strict,
        dry_run=dry_run,
        root=ctx.obj.get("root") if ctx.obj else None,
        verbose=verbose,
        json_output=json_output,
    )
    cmd.run()
