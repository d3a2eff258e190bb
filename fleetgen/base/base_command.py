"""
Base Command Class

Abstract base for all fleetgen CLI commands.
Provides common functionality and structure.
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

from rich.console import Console

from fleetgen.constants import (
    EXIT_ABORTED,
    EXIT_INVALID_INVOCATION,
    EXIT_PARTIAL_FAILURE,
)
from fleetgen.exceptions import ConfigError, FleetGenError
from fleetgen.logger import DeployLogger
from fleetgen.ui_components import show_header
from fleetgen.utils import get_workspace_root


class BaseCommand(ABC):
    """
    Abstract base command class.

    Provides:
    - Workspace root resolution
    - Logger initialization
    - Header display
    - Error handling with exit-code mapping
    - JSON output support
    """

    def __init__(
        self,
        root: Optional[str] = None,
        verbose: bool = False,
        json_output: bool = False,
    ):
        self.verbose = verbose
        self.json_output = json_output
        self.console = Console()
        self.root_option = root
        self.logger: Optional[DeployLogger] = None

    @property
    def workspace_root(self) -> Path:
        return get_workspace_root(self.root_option)

    def init_logger(self, log_dir: Path, scope: str, operation: str) -> DeployLogger:
        """
        Initialize command logger.

        In JSON mode the log file is still written but the console stays
        quiet so stdout carries only the JSON document.

        Args:
            log_dir: Root log directory from the fleet configuration
            scope: "fleet" or a host id
            operation: Command name

        Returns:
            DeployLogger instance
        """
        output_console = Console(quiet=True) if self.json_output else self.console
        self.logger = DeployLogger(
            log_dir,
            scope,
            operation,
            verbose=self.verbose,
            output_console=output_console,
        )
        return self.logger

    def output_json(self, data: Dict[str, Any], exit_code: int = 0) -> None:
        """
        Output data as JSON and exit.

        Args:
            data: Data to output as JSON
            exit_code: Exit code (0 for success, non-zero for error)
        """
        print(json.dumps(data, indent=2))
        if exit_code != 0:
            raise SystemExit(exit_code)

    def output_json_error(
        self,
        error: str,
        details: Optional[Dict[str, Any]] = None,
        exit_code: int = EXIT_PARTIAL_FAILURE,
    ) -> None:
        """
        Output error as JSON and exit.

        Args:
            error: Error message
            details: Optional error details
            exit_code: Exit code
        """
        error_data: Dict[str, Any] = {"error": error}
        if details:
            error_data["details"] = details
        self.output_json(error_data, exit_code=exit_code)

    def show_header(
        self,
        title: str,
        subtitle: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> None:
        """Show command header (skip in JSON or verbose mode)."""
        if not self.verbose and not self.json_output:
            show_header(
                title=title,
                subtitle=subtitle,
                details=details,
                console=self.console,
            )

    def print_success(self, message: str) -> None:
        """Print success message (skip in JSON mode)."""
        if not self.json_output:
            self.console.print(f"[green]✓ {message}[/green]")

    def print_error(self, message: str) -> None:
        """Print error message (skip in JSON mode)."""
        if not self.json_output:
            self.console.print(f"[red]✗ {message}[/red]")

    def print_warning(self, message: str) -> None:
        """Print warning message (skip in JSON mode)."""
        if not self.json_output:
            self.console.print(f"[yellow]⚠ {message}[/yellow]")

    def print_dim(self, message: str) -> None:
        """Print dim message (skip in JSON mode)."""
        if not self.json_output:
            self.console.print(f"[dim]{message}[/dim]")

    def print_log_location(self) -> None:
        if self.logger and self.logger.log_path and not self.json_output:
            self.console.print(f"\n[dim]Logs saved to:[/dim] {self.logger.log_path}\n")

    def fail(self, error: FleetGenError, exit_code: Optional[int] = None) -> None:
        """
        Report a fleetgen error and exit.

        ConfigError (bad workspace, unknown host) is an invalid invocation;
        everything else is a failed operation.
        """
        if exit_code is None:
            exit_code = (
                EXIT_INVALID_INVOCATION
                if isinstance(error, ConfigError)
                else EXIT_PARTIAL_FAILURE
            )

        if self.logger:
            self.logger.log_error(error.message, context=error.context)
        elif not self.json_output:
            self.print_error(error.message)
            if error.context:
                self.print_dim(f"Context: {error.context}")

        if self.json_output:
            details: Dict[str, Any] = {"type": type(error).__name__}
            if error.context:
                details["context"] = error.context
            for attr in ("host_id", "stage", "kind"):
                value = getattr(error, attr, None)
                if value:
                    details[attr] = value
            self.output_json_error(error.message, details=details, exit_code=exit_code)

        self.print_log_location()
        raise SystemExit(exit_code)

    @abstractmethod
    def execute(self, **kwargs) -> None:
        """
        Execute command logic.

        Must be implemented by subclasses.
        """
        pass

    def run(self, **kwargs) -> None:
        """
        Run command with error handling.

        Args:
            **kwargs: Command arguments
        """
        try:
            self.execute(**kwargs)
        except KeyboardInterrupt:
            self.console.print("\n[yellow]⚠️  Operation cancelled by user[/yellow]")
            self.print_log_location()
            raise SystemExit(EXIT_ABORTED)
        except SystemExit:
            raise
        except FleetGenError as e:
            self.fail(e)
        except (FileNotFoundError, PermissionError) as e:
            self.console.print(f"\n[bold red]✗ {type(e).__name__}:[/bold red] {e}\n")
            if self.logger:
                self.logger.log_error(f"{type(e).__name__}: {e}")
            self.print_log_location()
            raise SystemExit(EXIT_PARTIAL_FAILURE)
        except Exception as e:
            error_type = type(e).__name__
            self.console.print(f"\n[bold red]✗ {error_type}:[/bold red] {e}\n")
            if self.logger:
                self.logger.log_error(f"{error_type}: {e}")
            self.print_log_location()
            raise SystemExit(EXIT_PARTIAL_FAILURE)
        finally:
            if self.logger:
                self.logger.close()
