"""
fleetgen CLI - UI Components
Standardized headers and outcome styling
"""

from rich.console import Console

from fleetgen.models import FleetStatus, GenerationStatus, HostOutcome

LOGO = "fleetgen"

# Color scheme
BRAND_COLOR = "cyan"
SUCCESS_COLOR = "green"
WARNING_COLOR = "yellow"
ERROR_COLOR = "red"

OUTCOME_COLORS = {
    HostOutcome.SUCCESS: SUCCESS_COLOR,
    HostOutcome.ROLLED_BACK: SUCCESS_COLOR,
    HostOutcome.UNVERIFIED: WARNING_COLOR,
    HostOutcome.SKIPPED: "dim",
    HostOutcome.CHECKED_FAILED: ERROR_COLOR,
    HostOutcome.BUILD_FAILED: ERROR_COLOR,
    HostOutcome.ACTIVATION_FAILED: ERROR_COLOR,
}

STATUS_COLORS = {
    GenerationStatus.ACTIVE: SUCCESS_COLOR,
    GenerationStatus.PENDING: WARNING_COLOR,
    GenerationStatus.SUPERSEDED: "dim",
    GenerationStatus.ROLLED_BACK: ERROR_COLOR,
}

FLEET_COLORS = {
    FleetStatus.SUCCESS: SUCCESS_COLOR,
    FleetStatus.PARTIAL_FAILURE: WARNING_COLOR,
    FleetStatus.ABORTED: ERROR_COLOR,
}


def styled(text: str, color: str) -> str:
    return f"[{color}]{text}[/{color}]"


def show_header(
    title: str,
    subtitle: str = None,
    details: dict = None,
    console: Console = None,
):
    """
    Display a standardized fleetgen command header.

    Args:
        title: Main title (e.g., "Deploy", "Rollback")
        subtitle: Optional subtitle line
        details: Additional key-value pairs to display
        console: Rich Console instance (creates new if None)

    Example:
        show_header(
            title="Deploy",
            details={"Hosts": "web-1, web-2", "Policy": "continue"}
        )
    """
    if console is None:
        console = Console()

    prefix = f" [bold {BRAND_COLOR}]{LOGO}[/bold {BRAND_COLOR}] [dim]›[/dim]"
    console.print(f"{prefix} [bold white]{title}[/bold white]")

    if subtitle:
        console.print(f"{prefix} [dim]{subtitle}[/dim]")

    if details:
        for key, value in details.items():
            console.print(f"{prefix} {key}: [cyan]{value}[/cyan]")

    console.print()
