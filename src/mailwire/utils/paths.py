"""Centralized path definitions for mailwire.

Only paths are defined here; nothing is created on import.
"""

from pathlib import Path

# Base application directory
MAILWIRE_DIR = Path.home() / ".mailwire"

# Subdirectories
LOGS_DIR = MAILWIRE_DIR / "logs"

# Specific files
CONFIG_PATH = MAILWIRE_DIR / "config.json"
ENV_PATH = MAILWIRE_DIR / ".env"
