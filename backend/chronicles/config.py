"""
Engine configuration.

Every setting can be overridden with a CHRONICLES_* environment variable.
"""

import os

# Server settings
HOST = os.getenv("CHRONICLES_HOST", "127.0.0.1")
PORT = int(os.getenv("CHRONICLES_PORT", "8000"))

# Database settings
DATABASE_URL = os.getenv(
    "CHRONICLES_DATABASE_URL", "sqlite+aiosqlite:///./chronicles.db"
)

# Logging
LOG_LEVEL = os.getenv("CHRONICLES_LOG_LEVEL", "INFO")

# How many times a log append is attempted before the store gives up
LOG_APPEND_RETRIES = int(os.getenv("CHRONICLES_LOG_APPEND_RETRIES", "3"))

# Presence entries without a heartbeat for this long are dropped
PRESENCE_TIMEOUT = float(os.getenv("CHRONICLES_PRESENCE_TIMEOUT", "30"))

# Content directory for YAML campaign files
WORLD_DATA_DIR = os.getenv(
    "CHRONICLES_WORLD_DATA_DIR",
    os.path.join(os.path.dirname(__file__), "world_data"),
)

# Stat bounds enforced by modify_stat
STAT_MIN = 1
STAT_MAX = 10
