"""fleetgen CLI - Check command"""

import click
from rich.markup import escape
from rich.table import Table

from fleetgen.base import FleetCommand
from fleetgen.constants import EXIT_PARTIAL_FAILURE, EXIT_SUCCESS
from fleetgen.models import CheckOutcome, CheckStage
from fleetgen.ui_components import ERROR_COLOR, SUCCESS_COLOR, WARNING_COLOR, styled

STAGE_COLORS = {
    CheckOutcome.PASS: SUCCESS_COLOR,
    CheckOutcome.FAIL: ERROR_COLOR,
    CheckOutcome.ERROR: ERROR_COLOR,
}


class CheckCommand(FleetCommand):
    """Run lint, eval and tests for hosts without building anything."""

    def __init__(
        self,
        host_ids: tuple = (),
        strict: bool = False,
        concurrency: int = None,
        root: str = None,
        verbose: bool = False,
        json_output: bool = False,
    ):
        super().__init__(root=root, verbose=verbose, json_output=json_output)
        self.host_ids = host_ids
        self.strict = strict
        self.concurrency = concurrency

    def execute(self) -> None:
        """Execute check command."""
        hosts = self.select_hosts(self.host_ids)
        strict = self.strict or self.config.settings.strict_lint
        concurrency = self.concurrency or self.config.settings.default_concurrency

        self.show_header(
            title="Check",
            details={
                "Hosts": ", ".join(h.id for h in hosts),
                "Strict lint": "yes" if strict else "no",
            },
        )

        logger = self.init_logger(self.config.log_dir, "fleet", "check")
        logger.step(f"Checking {len(hosts)} host(s)")

        orchestrator = self.build_orchestrator(
            hosts, strict=strict, build=False, activate=False
        )
        reports = orchestrator.check([h.id for h in hosts], concurrency=concurrency)

        failed = [host_id for host_id, report in reports.items() if not report.is_clear]
        exit_code = EXIT_PARTIAL_FAILURE if failed else EXIT_SUCCESS

        if self.json_output:
            self.output_json(
                {
                    "status": "failed" if failed else "clear",
                    "hosts": [
                        {
                            "host": host_id,
                            "clear": report.is_clear,
                            "results": [r.to_dict() for r in report.results],
                        }
                        for host_id, report in reports.items()
                    ],
                },
                exit_code=exit_code,
            )
            return

        table = Table(
            title="Check Results",
            title_justify="left",
            show_header=True,
            header_style="bold cyan",
            padding=(0, 1),
        )
        table.add_column("Host", style="cyan", no_wrap=True)
        for stage in CheckStage:
            table.add_column(stage.value.capitalize())
        table.add_column("Result")

        for host_id, report in reports.items():
            cells = []
            for stage in CheckStage:
                result = report.get(stage)
                if result is None:
                    cells.append(styled("skipped", "dim"))
                elif stage == CheckStage.LINT and not result.passed and not strict:
                    cells.append(styled(f"{result.outcome.value} (advisory)", WARNING_COLOR))
                else:
                    cells.append(styled(result.outcome.value, STAGE_COLORS[result.outcome]))
            verdict = (
                styled("clear", SUCCESS_COLOR)
                if report.is_clear
                else styled("blocked", ERROR_COLOR)
            )
            table.add_row(host_id, *cells, verdict)

        self.console.print(table)

        for host_id, report in reports.items():
            blocking = report.blocking_result
            if blocking is not None:
                self.console.print(
                    f"\n[bold]{host_id}[/bold] [red]{blocking.stage.value} {blocking.outcome.value}[/red]"
                )
                for line in blocking.diagnostics:
                    self.console.print(f"  [dim]{escape(line)}[/dim]")
            for line in report.advisories:
                self.console.print(f"  [yellow]lint:[/yellow] {escape(line)}")

        if failed:
            logger.warning(f"{len(failed)} host(s) not clear: {', '.join(failed)}")
        else:
            logger.success("All hosts clear to build")
        self.print_log_location()

        if exit_code != EXIT_SUCCESS:
            raise SystemExit(exit_code)


@click.command(name="check")
@click.argument("hosts", nargs=-1)
@click.option("--strict", is_flag=True, help="Lint findings block the host")
@click.option(
    "--concurrency",
    "-c",
    type=click.IntRange(min=1),
    default=None,
    help="Hosts checked in parallel (default from fleet.yml)",
)
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
@click.pass_context
def check(ctx, hosts, strict, concurrency, verbose, json_output):
    """
    Lint, evaluate and test host configurations

    \b
    Examples:
      fleetgen check                 # Every host in hosts.yml
      fleetgen check web-1 db-1      # Selected hosts
      fleetgen check --strict web-1  # Lint findings block

    \b
    Exit codes: 0 all clear, 1 some host blocked, 3 invalid invocation
    """
    cmd = CheckCommand(
        host_ids=hosts,
        strict=strict,
        concurrency=concurrency,
        root=ctx.obj.get("root") if ctx.obj else None,
        verbose=verbose,
        json_output=json_output,
    )
    cmd.run()
