DEFAULT_SCHEMA = "public"
"""Default PostgreSQL schema for the root table."""

DEFAULT_ROOT_COLUMN = "id"
"""Default column used to select the root row."""

DEFAULT_POSTGRESQL_PORT = 5432
"""Default port number for PostgreSQL connections."""

DEFAULT_CONFIG_PATH = "~/.config/cherrypick/config.yaml"
"""Config file location used when neither --config nor CHERRYPICK_CONFIG is given."""

CONFIG_PATH_ENV_VAR = "CHERRYPICK_CONFIG"
"""Environment variable that overrides the default config file location."""

DEFAULT_RETRY_ATTEMPTS = 3
"""Default number of attempts for a single row fetch."""

DEFAULT_RETRY_INITIAL_DELAY = 0.2
"""Default delay (seconds) before the first fetch retry."""

DEFAULT_RETRY_MAX_DELAY = 5.0
"""Upper bound (seconds) for any single retry delay."""

DEFAULT_RETRY_EXPONENTIAL_BASE = 2.0
"""Multiplier applied to the retry delay after every failed attempt."""

DISPLAY_LABEL_MAX_LENGTH = 32
"""Text values longer than this are truncated in graph node labels."""

MAX_AVAILABLE_COLUMNS_DISPLAY = 10
"""Maximum number of columns to list in error messages."""
