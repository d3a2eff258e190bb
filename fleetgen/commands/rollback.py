"""fleetgen CLI - Rollback command"""

import click

from fleetgen.base import FleetCommand
from fleetgen.constants import EXIT_PARTIAL_FAILURE
from fleetgen.models import HostOutcome
from fleetgen.ui_components import OUTCOME_COLORS, styled


class RollbackCommand(FleetCommand):
    """Re-activate an earlier generation of one host without rebuilding."""

    def __init__(
        self,
        host_id: str,
        generation: int,
        root: str = None,
        verbose: bool = False,
        json_output: bool = False,
    ):
        super().__init__(root=root, verbose=verbose, json_output=json_output)
        self.host_id = host_id
        self.generation = generation

    def execute(self) -> None:
        """Execute rollback command."""
        host = self.registry.get(self.host_id)

        self.show_header(
            title="Rollback",
            details={"Host": host.id, "Target": f"#{self.generation}"},
        )

        logger = self.init_logger(self.config.log_dir, host.id, "rollback")
        logger.step(f"Rolling back {host.id} to generation #{self.generation}")

        orchestrator = self.build_orchestrator([host], check=False, build=False)
        result = orchestrator.rollback(host.id, self.generation)

        exit_code = 0 if result.outcome == HostOutcome.ROLLED_BACK else EXIT_PARTIAL_FAILURE

        if self.json_output:
            self.output_json(result.to_dict(), exit_code=exit_code)
            return

        self.console.print(
            f"{host.id}: {styled(result.outcome.value, OUTCOME_COLORS[result.outcome])}"
            f" [dim]({'; '.join(result.diagnostics)})[/dim]"
        )
        if result.outcome == HostOutcome.ROLLED_BACK:
            logger.success(f"Generation #{result.generation} is active")
        else:
            logger.warning(f"Generation #{result.generation} is live but unverified")
        self.print_log_location()

        if exit_code:
            raise SystemExit(exit_code)


@click.command(name="rollback")
@click.argument("host")
@click.argument("generation", type=click.IntRange(min=1))
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
@click.pass_context
def rollback(ctx, host, generation, verbose, json_output):
    """
    Re-activate an earlier generation of a host

    The target must be a superseded generation reachable from the active
    one, and its artifact must still exist. Nothing is rebuilt.

    \b
    Examples:
      fleetgen status web-1        # Find the generation number
      fleetgen rollback web-1 3    # Make #3's artifact live again

    \b
    Exit codes: 0 rolled back, 1 refused or failed, 3 invalid invocation
    """
    cmd = RollbackCommand(
        host,
        generation,
        root=ctx.obj.get("root") if ctx.obj else None,
        verbose=verbose,
        json_output=json_output,
    )
    cmd.run()
