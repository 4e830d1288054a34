"""
Constants for the retrace package.
"""
from pathlib import Path
import os

# Application information
APP_NAME = "retrace"
APP_VERSION = "0.1.0"
APP_DESCRIPTION = "Checkpoints, operation logs and rollback for multi-step automated pipelines"

# Paths
CONFIG_DIR = Path(os.path.expanduser("~/.config/retrace"))
CONFIG_FILE = CONFIG_DIR / "config.toml"
LOG_DIR = CONFIG_DIR / "logs"
DEFAULT_STATE_DIR = CONFIG_DIR / "state"

# Persisted layout under <state_dir>/<pipeline_id>/
CHECKPOINTS_DIRNAME = "checkpoints"
BACKUPS_DIRNAME = "backups"
ROLLBACK_LOG_FILENAME = "rollback_log.json"
LOCK_FILENAME = ".lock"

# Environment overrides
ENV_STATE_DIR = "RETRACE_STATE_DIR"
ENV_TEST_TIMEOUT = "RETRACE_TEST_TIMEOUT"

# Logging
LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level} | {extra[name]} | {message}"
LOG_ROTATION = "50 MB"
LOG_RETENTION = "10 days"

# Contract validation
DEFAULT_TEST_TIMEOUT = 600  # seconds
DIAGNOSTIC_TAIL_LINES = 10
DEFAULT_ARTIFACT_FILE = "artifact.json"
PROJECT_ROOT_DIR = "project_root"
