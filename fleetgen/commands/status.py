"""fleetgen CLI - Status command"""

import click
from rich.markup import escape
from rich.table import Table

from fleetgen.base import FleetCommand
from fleetgen.models import Generation
from fleetgen.ui_components import STATUS_COLORS, styled


def _notes(generation: Generation) -> str:
    notes = []
    if generation.restored_from is not None:
        notes.append(f"restores #{generation.restored_from}")
    if generation.reason:
        notes.append(generation.reason)
    return "; ".join(notes)


class StatusCommand(FleetCommand):
    """Show active generations, or one host's generation history."""

    def __init__(
        self,
        host_id: str = None,
        limit: int = 20,
        root: str = None,
        verbose: bool = False,
        json_output: bool = False,
    ):
        super().__init__(root=root, verbose=verbose, json_output=json_output)
        self.host_id = host_id
        self.limit = limit

    def execute(self) -> None:
        """Execute status command."""
        if self.host_id:
            self._show_host_history()
        else:
            self._show_fleet_status()

    def _show_fleet_status(self) -> None:
        store = self.ensure_store()
        hosts = self.registry.load()

        rows = []
        for host in hosts:
            history = store.history(host.id)
            active = store.active(host.id)
            rows.append((host, active, len(history)))

        if self.json_output:
            self.output_json(
                {
                    "hosts": [
                        {
                            "host": host.id,
                            "platform": host.platform.value,
                            "reachable": host.reachable,
                            "generations": count,
                            "active": active.to_dict() if active else None,
                        }
                        for host, active, count in rows
                    ]
                }
            )
            return

        self.show_header(title="Fleet Status", details={"Hosts": len(hosts)})

        table = Table(
            title="Active Generations",
            title_justify="left",
            show_header=True,
            header_style="bold cyan",
            padding=(0, 1),
        )
        table.add_column("Host", style="cyan", no_wrap=True)
        table.add_column("Platform", style="dim")
        table.add_column("Active", justify="right")
        table.add_column("Hash", style="yellow")
        table.add_column("Since", style="dim")
        table.add_column("Generations", justify="right", style="dim")
        table.add_column("Notes", style="dim")

        for host, active, count in rows:
            notes = [] if host.reachable else ["unreachable"]
            if active is None:
                table.add_row(
                    host.id,
                    host.platform.value,
                    styled("none", "dim"),
                    "-",
                    "-",
                    str(count),
                    ", ".join(notes),
                )
                continue
            if _notes(active):
                notes.append(_notes(active))
            table.add_row(
                host.id,
                host.platform.value,
                styled(f"#{active.sequence}", STATUS_COLORS[active.status]),
                active.artifact.short_hash,
                active.timestamp,
                str(count),
                escape(", ".join(notes)),
            )

        self.console.print(table)

    def _show_host_history(self) -> None:
        host = self.registry.get(self.host_id)
        store = self.ensure_store()
        history = store.history(host.id)
        shown = list(reversed(history))[: self.limit]

        if self.json_output:
            self.output_json(
                {
                    "host": host.id,
                    "generations": [g.to_dict() for g in shown],
                }
            )
            return

        self.show_header(
            title=f"Generation History: {host.id}",
            details={"Platform": host.platform.value, "Generations": len(history)},
        )

        if not history:
            self.print_warning(f"No generations recorded for {host.id}")
            self.print_dim(f"Deploy it first: fleetgen deploy {host.id}")
            return

        table = Table(
            title=f"{host.id} (newest first)",
            title_justify="left",
            show_header=True,
            header_style="bold cyan",
            padding=(0, 1),
        )
        table.add_column("#", justify="right", no_wrap=True)
        table.add_column("Status")
        table.add_column("Hash", style="yellow")
        table.add_column("Recorded", style="dim")
        table.add_column("Predecessor", justify="right", style="dim")
        table.add_column("Notes", style="dim")

        for generation in shown:
            marker = "● " if generation.is_active else "  "
            table.add_row(
                f"{marker}{generation.sequence}",
                styled(generation.status.value, STATUS_COLORS[generation.status]),
                generation.artifact.short_hash,
                generation.timestamp,
                f"#{generation.predecessor}" if generation.predecessor else "-",
                escape(_notes(generation)),
            )

        self.console.print(table)
        if len(history) > len(shown):
            self.print_dim(f"{len(history) - len(shown)} older generation(s) not shown")


@click.command(name="status")
@click.argument("host", required=False)
@click.option("-n", "--limit", type=click.IntRange(min=1), default=20, help="Generations to show")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
@click.pass_context
def status(ctx, host, limit, verbose, json_output):
    """
    Show active generations across the fleet, or one host's history

    \b
    Examples:
      fleetgen status           # Active generation per host
      fleetgen status web-1     # Full history of web-1
    """
    cmd = StatusCommand(
        host_id=host,
        limit=limit,
        root=ctx.obj.get("root") if ctx.obj else None,
        verbose=verbose,
        json_output=json_output,
    )
    cmd.run()
