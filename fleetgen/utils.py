"""
CLI Utilities

Workspace discovery and small helpers shared by the orchestrator and commands.
"""

import os
import threading
from pathlib import Path
from typing import Callable, Optional, TypeVar

from fleetgen.constants import FLEET_CONFIG_FILE, HOSTS_FILE, ROOT_ENV_VAR
from fleetgen.exceptions import ConfigError

T = TypeVar("T")


def find_workspace_root(start: Optional[Path] = None) -> Path:
    """
    Locate the fleet workspace.

    Walks up from `start` (default: cwd) to the first directory holding
    hosts.yml or fleet.yml. Falls back to `start` itself so a missing
    workspace is reported by the registry with the expected path.
    """
    start = Path(start or Path.cwd()).resolve()
    for candidate in [start, *start.parents]:
        if (candidate / HOSTS_FILE).exists() or (candidate / FLEET_CONFIG_FILE).exists():
            return candidate
    return start


def get_workspace_root(root: Optional[str] = None) -> Path:
    """
    Resolve the workspace root.

    Order: explicit --root, FLEETGEN_ROOT, then discovery from cwd.

    Raises:
        ConfigError: If an explicit root does not exist
    """
    explicit = root or os.environ.get(ROOT_ENV_VAR)
    if explicit:
        path = Path(explicit).expanduser().resolve()
        if not path.is_dir():
            raise ConfigError(
                f"Workspace root does not exist: {path}",
                context=f"Pass --root or set {ROOT_ENV_VAR}",
            )
        return path
    return find_workspace_root()


def call_with_timeout(fn: Callable[..., T], timeout: Optional[float], *args) -> T:
    """
    Run fn(*args) and give up waiting after `timeout` seconds.

    The call runs on a daemon thread; on timeout it is abandoned, not
    killed, and TimeoutError is raised. Exceptions from fn propagate.
    """
    if timeout is None:
        return fn(*args)

    outcome = {}

    def target():
        try:
            outcome["value"] = fn(*args)
        except BaseException as e:
            outcome["error"] = e

    worker = threading.Thread(target=target, daemon=True)
    worker.start()
    worker.join(timeout)

    if worker.is_alive():
        raise TimeoutError(f"{getattr(fn, '__name__', 'call')} timed out after {timeout:g}s")
    if "error" in outcome:
        raise outcome["error"]
    return outcome["value"]
