#!/usr/bin/env python3
"""fleetgen CLI - Main entry point"""

import functools
import os
import sys

from rich.console import Console

import rich_click as click
from click.exceptions import Abort, ClickException, UsageError

from fleetgen import __version__
from fleetgen.commands import check, deploy, rollback, status
from fleetgen.constants import (
    EXIT_ABORTED,
    EXIT_INVALID_INVOCATION,
    EXIT_PARTIAL_FAILURE,
    ROOT_ENV_VAR,
)

# Configure rich-click output
click.rich_click.USE_RICH_MARKUP = True
click.rich_click.USE_MARKDOWN = False
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.MAX_WIDTH = 100

# COMMANDS / OPTIONS
click.rich_click.STYLE_COMMAND = "bold cyan"
click.rich_click.STYLE_OPTION = "bold magenta"
click.rich_click.STYLE_SWITCH = "bold green"
click.rich_click.STYLE_ARGUMENT = "bold yellow"

# HEADERS / HELP TEXT
click.rich_click.STYLE_HEADER_TEXT = "bold cyan"
click.rich_click.STYLE_USAGE = "bold yellow"
click.rich_click.STYLE_USAGE_COMMAND = "bold cyan"
click.rich_click.STYLE_HELPTEXT_FIRST_LINE = "bold white"
click.rich_click.STYLE_HELPTEXT = ""

# PANEL BORDERS
click.rich_click.STYLE_OPTIONS_PANEL_BORDER = "cyan"
click.rich_click.STYLE_COMMANDS_PANEL_BORDER = "cyan"
click.rich_click.ERRORS_EPILOGUE = ""

console = Console()


def handle_cli_errors(func):
    """Decorator to handle CLI errors gracefully."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except UsageError as e:
            console.print(f"\n[bold red]✗ Error:[/bold red] {e.format_message()}\n")
            if e.ctx and e.ctx.command:
                console.print(
                    f"[dim]Run[/dim] [cyan]fleetgen {e.ctx.command.name} --help[/cyan] [dim]for usage information[/dim]\n"
                )
            sys.exit(EXIT_INVALID_INVOCATION)
        except ClickException as e:
            # Click's built-in exceptions (already formatted)
            e.show()
            sys.exit(EXIT_INVALID_INVOCATION)
        except (Abort, KeyboardInterrupt):
            console.print("\n\n[yellow]⚠️  Operation cancelled by user[/yellow]")
            sys.exit(EXIT_ABORTED)
        except Exception as e:
            console.print(f"\n[bold red]✗ Unexpected error:[/bold red] {e}\n")
            if os.environ.get("DEBUG"):
                import traceback

                console.print("[dim]Traceback:[/dim]")
                traceback.print_exc()
            sys.exit(EXIT_PARTIAL_FAILURE)

    return wrapper


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--root",
    envvar=ROOT_ENV_VAR,
    type=click.Path(file_okay=False),
    default=None,
    help="Workspace directory holding fleet.yml and hosts.yml",
)
@click.pass_context
def cli(ctx: click.Context, root) -> None:
    """
    fleetgen - Generation-based deployments for declarative host fleets.

    \b
    Workflow:
      fleetgen check                 # Lint, evaluate and test every host
      fleetgen deploy web-1 db-1     # Build and activate new generations
      fleetgen status web-1          # Generation history
      fleetgen rollback web-1 3      # Re-activate generation #3
    """
    ctx.ensure_object(dict)
    ctx.obj["root"] = root


# Register commands
cli.add_command(check.check)
cli.add_command(deploy.deploy)
cli.add_command(rollback.rollback)
cli.add_command(status.status)


@handle_cli_errors
def main():
    """Main entry point with error handling."""
    cli(standalone_mode=False)


if __name__ == "__main__":
    main()
