"""Configuration constants for skillcore.

Single source of truth for default configuration values. Kept separate from
schema.py so components can import defaults without pulling in pydantic models.
"""

from pathlib import Path

# Default paths
DEFAULT_DATA_DIR = Path.home() / ".skillcore"
DEFAULT_CONFIG_PATH = DEFAULT_DATA_DIR / "settings.json"
DEFAULT_STORE_DIR = DEFAULT_DATA_DIR / "skills"
DEFAULT_LOG_DIR = DEFAULT_DATA_DIR / "logs"

# Registry cache
DEFAULT_CACHE_MAX_SIZE = 500
DEFAULT_CACHE_TTL_SECONDS = 300.0
DEFAULT_DISCOVER_LIMIT = 100

# Execution
DEFAULT_EXECUTION_TIMEOUT_MS = 30_000
DEFAULT_ALLOWED_COMMANDS = ["ls", "cat", "echo", "grep", "awk", "sed", "head", "tail", "wc", "sort"]
DEFAULT_SANDBOX_PATHS = ["/tmp", "/var/tmp"]
DEFAULT_MAX_MEMORY_BYTES = 512 * 1024 * 1024
DEFAULT_MAX_CPU_SECONDS = 5
DEFAULT_MAX_OUTPUT_BYTES = 1_048_576
DEFAULT_WORKFLOW_CONCURRENCY = 8
LAYER3_MIN_TIMEOUT_MS = 5_000

# Synchronization
DEFAULT_SYNC_INTERVAL_SECONDS = 300.0

# Logging
DEFAULT_LOG_LEVEL = "info"
