"""
Logging system for fleetgen
Provides real-time logging to files with clean console output
"""

import re
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional, TextIO

from rich.console import Console
from rich.markup import escape

from fleetgen.constants import LOG_DATE_FORMAT

console = Console()

ANSI_ESCAPE = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")


class DeployLogger:
    """
    Manages logging for fleet operations
    - Writes all output to log files in real-time
    - Shows clean progress UI in console (unless verbose)
    - Safe to share between host workers
    - Captures errors with host and stage context

    Secret material must never be passed to this logger; callers log
    secret names and outcomes only.
    """

    def __init__(
        self,
        log_dir: Path,
        scope: str,
        operation: str,
        verbose: bool = False,
        output_console: Optional[Console] = None,
    ):
        """
        Initialize logger

        Args:
            log_dir: Root directory for log files
            scope: Log namespace (e.g. 'fleet' or a host id)
            operation: Operation name (e.g., 'deploy', 'rollback', 'check')
            verbose: If True, show all output in console
            output_console: Rich console to print to (module console by default)
        """
        self.scope = scope
        self.operation = operation
        self.verbose = verbose
        self.console = output_console or console
        self.log_file: Optional[TextIO] = None
        self.log_path: Optional[Path] = None
        self.current_step = ""
        self.has_errors = False
        self._lock = threading.Lock()

        # Structure: logs/{scope}/{date}/{time}_{operation}.log
        now = datetime.now()
        date_str = now.strftime(LOG_DATE_FORMAT)
        time_str = now.strftime("%H-%M-%S-%f")

        scope_logs_dir = Path(log_dir) / scope / date_str
        scope_logs_dir.mkdir(parents=True, exist_ok=True)

        self.log_path = scope_logs_dir / f"{time_str}_{operation}.log"

        # Line buffered for real-time tailing
        self.log_file = open(self.log_path, "w", buffering=1)

        self._write_log_header()

    def _write_log_header(self):
        """Write log file header"""
        header = f"""
{"=" * 80}
fleetgen Deployment Log
{"=" * 80}
Scope: {self.scope}
Operation: {self.operation}
Started: {datetime.now().isoformat()}
{"=" * 80}

"""
        self._write(header)

    def _write(self, text: str) -> None:
        with self._lock:
            if self.log_file:
                self.log_file.write(text)
                self.log_file.flush()

    def log(self, message: str, level: str = "INFO"):
        """
        Log a message to file and optionally console

        Args:
            message: Message to log
            level: Log level (INFO, WARNING, ERROR, DEBUG)
        """
        timestamp = datetime.now().strftime("%H:%M:%S")
        self._write(f"[{timestamp}] [{level}] {ANSI_ESCAPE.sub('', message)}\n")

        if self.verbose:
            if level == "ERROR":
                self.console.print(f"[red]{escape(message)}[/red]")
            elif level == "WARNING":
                self.console.print(f"[yellow]{escape(message)}[/yellow]")
            elif level == "DEBUG":
                self.console.print(f"[dim]{escape(message)}[/dim]")
            else:
                self.console.print(escape(message))

    def log_command(self, command: str):
        """Log a command being executed"""
        self.log(f"Executing: {command}", "DEBUG")

    def log_output(self, output: str, stream: str = "stdout"):
        """
        Log command output

        Always written to the log file, shown in console only if verbose.

        Args:
            output: Command output (single line or multiline)
            stream: Stream name (stdout, stderr)
        """
        if not output:
            return

        clean_output = ANSI_ESCAPE.sub("", output)
        self._write(
            "".join(f"  [{stream}] {line}\n" for line in clean_output.splitlines())
        )

        if self.verbose:
            self.console.print(escape(output))

    def log_host(self, host_id: str, message: str, level: str = "INFO"):
        """Log a message attributed to one host"""
        self.log(f"[{host_id}] {message}", level)

    def log_error(self, error: str, context: Optional[str] = None):
        """
        Log an error with context

        Args:
            error: Error message
            context: Additional context (e.g., host and stage that failed)
        """
        self.has_errors = True

        error_block = f"""
{"!" * 80}
ERROR OCCURRED
{"!" * 80}
{error}
"""
        if context:
            error_block += f"\nContext: {context}\n"

        error_block += f"{'!' * 80}\n\n"
        self._write(error_block)

        self.console.print(f"[bold red]✗ {escape(error)}[/bold red]")
        if context:
            self.console.print(f"  [color(208)]{escape(context)}[/color(208)]")

    def step(self, step_name: str):
        """
        Start a new step

        Args:
            step_name: Name of the step
        """
        self.current_step = step_name
        self.log(f"Step: {step_name}", "INFO")

        if not self.verbose:
            self.console.print(
                f"[color(214)]▶[/color(214)] [white]{escape(step_name)}[/white]"
            )

    def success(self, message: str):
        """Log a success message"""
        self.log(message, "INFO")

        if not self.verbose:
            self.console.print(f"  [dim]✓ {escape(message)}[/dim]")

    def warning(self, message: str):
        """Log a warning message"""
        self.log(message, "WARNING")

        if not self.verbose:
            self.console.print(f"  [yellow]⚠[/yellow] [dim]{escape(message)}[/dim]")

    def close(self):
        """Close log file"""
        with self._lock:
            if self.log_file:
                footer = f"""
{"=" * 80}
Completed: {datetime.now().isoformat()}
Status: {"FAILED" if self.has_errors else "SUCCESS"}
{"=" * 80}
"""
                self.log_file.write(footer)
                self.log_file.close()
                self.log_file = None

    def __enter__(self):
        """Context manager entry"""
        return self

    def __exit__(self, exc_type, exc_val, _exc_tb):
        """Context manager exit"""
        if exc_type is not None and exc_type != SystemExit:
            # SystemExit carries the exit code, not a failure to report
            self.log_error(
                str(exc_val) if exc_val else "Operation failed",
                context=f"{exc_type.__name__}",
            )
        self.close()
        return False
