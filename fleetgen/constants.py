"""
fleetgen Constants

Centralized constants for magic values, defaults, and configuration.
"""

# Workspace layout
FLEET_CONFIG_FILE = "fleet.yml"
HOSTS_FILE = "hosts.yml"
ENV_FILE = ".env"
ROOT_ENV_VAR = "FLEETGEN_ROOT"
ENV_PREFIX = "FLEETGEN_"

DEFAULT_STATE_DIR = ".fleetgen/state"
DEFAULT_LOG_DIR = ".fleetgen/logs"
GENERATIONS_DIR = "generations"
GENERATION_LOG_SUFFIX = ".jsonl"

# Scheduling defaults
DEFAULT_CONCURRENCY = 4
DEFAULT_POLICY = "continue"

# Per-stage timeouts (seconds)
DEFAULT_LINT_TIMEOUT = 60
DEFAULT_EVAL_TIMEOUT = 300
DEFAULT_TEST_TIMEOUT = 600
DEFAULT_BUILD_TIMEOUT = 1800
DEFAULT_SECRETS_TIMEOUT = 30
DEFAULT_SWITCH_TIMEOUT = 300
DEFAULT_PROBE_TIMEOUT = 30

# Secrets
DEFAULT_SECRET_MODE = 0o400
SECRET_DIR_MODE = 0o700
RAM_BACKED_RUNTIME_DIRS = ("/dev/shm",)

# Content hashes are hex SHA-256 digests
CONTENT_HASH_LENGTH = 64

# Process exit codes
EXIT_SUCCESS = 0
EXIT_PARTIAL_FAILURE = 1
EXIT_ABORTED = 2
EXIT_INVALID_INVOCATION = 3

# Log Configuration
LOG_DATE_FORMAT = "%Y-%m-%d"
LOG_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
