# retrace/config.py
"""
Configuration management for retrace.
Uses TOML format for configuration files.
"""
import os
import sys
from pathlib import Path
from typing import Optional

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

import tomli_w
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError
from dotenv import load_dotenv

from retrace.constants import (
    CONFIG_FILE,
    DEFAULT_STATE_DIR,
    DEFAULT_TEST_TIMEOUT,
    DIAGNOSTIC_TAIL_LINES,
    ENV_STATE_DIR,
    ENV_TEST_TIMEOUT,
)
from retrace.utils.logging import get_logger

logger = get_logger(__name__)


# --- Configuration Models ---

class StorageConfig(BaseModel):
    """Where checkpoints, rollback logs and backups are persisted."""
    state_dir: Path = Field(DEFAULT_STATE_DIR, description="Base directory holding one subdirectory per pipeline")


class ValidationConfig(BaseModel):
    """Contract validation settings."""
    test_timeout: float = Field(DEFAULT_TEST_TIMEOUT, gt=0, description="Seconds before a test-suite run is killed")
    tail_lines: int = Field(DIAGNOSTIC_TAIL_LINES, ge=1, description="Lines of stdout/stderr kept in failure details")


class AppConfig(BaseModel):
    """Application configuration settings."""
    storage: StorageConfig = Field(default_factory=StorageConfig, description="Storage configuration")
    validation: ValidationConfig = Field(default_factory=ValidationConfig, description="Validation configuration")
    debug: bool = Field(False, description="Enable debug mode")


# --- Configuration Manager ---

class ConfigManager:
    """Manages the retrace configuration stored as TOML."""

    def __init__(self, config_file: Optional[Path] = None):
        self._config: AppConfig = AppConfig()
        self.config_file = Path(config_file) if config_file else CONFIG_FILE
        self._load_environment()

    def _load_environment(self) -> None:
        """Applies overrides from environment variables and a .env file."""
        load_dotenv()
        state_dir = os.getenv(ENV_STATE_DIR)
        if state_dir:
            self._config.storage.state_dir = Path(state_dir).expanduser()

        test_timeout = os.getenv(ENV_TEST_TIMEOUT)
        if test_timeout:
            try:
                self._config.validation.test_timeout = float(test_timeout)
            except ValueError:
                logger.warning(f"Ignoring invalid {ENV_TEST_TIMEOUT}={test_timeout!r}, expected a number of seconds")

    def load_config(self) -> None:
        """Loads configuration from the TOML config file."""
        if not self.config_file.exists():
            logger.debug(f"Configuration file not found at '{self.config_file}'. Using defaults.")
            return

        try:
            logger.debug(f"Loading configuration from: {self.config_file}")
            with open(self.config_file, "rb") as f:
                config_data = tomllib.load(f)

            self._config = AppConfig.model_validate(config_data)

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Error decoding TOML configuration file ({self.config_file}): {e}")
            logger.error("Using default configuration and environment variables.")
            self._config = AppConfig()
        except PydanticValidationError as e:
            logger.error(f"Invalid configuration in {self.config_file}: {e}")
            logger.error("Using default configuration and environment variables.")
            self._config = AppConfig()
        except OSError as e:
            logger.error(f"I/O error accessing configuration file {self.config_file}: {e}")
            logger.error("Using default configuration and environment variables.")
            self._config = AppConfig()

        # Environment always wins over the file
        self._load_environment()

    def save_config(self) -> None:
        """Saves the current configuration to the config file (as TOML)."""
        config_dict = self._config.model_dump(mode="json")

        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, "wb") as f:
            tomli_w.dump(config_dict, f)
        logger.info(f"Configuration saved to {self.config_file}")

    @property
    def config(self) -> AppConfig:
        """Provides access to the current application configuration."""
        return self._config


# --- Global Instance ---

# Loaded explicitly by entry points (see retrace.cli.main)
config_manager = ConfigManager()
