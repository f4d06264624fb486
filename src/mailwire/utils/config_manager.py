"""Configuration manager for persistent settings stored as JSON."""

import json
import os
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from .errors import (
    ConfigurationError,
    FileSystemError,
    InvalidConfigError,
    MailwireError,
    MissingConfigError,
)
from .logging import get_logger, log_call
from .paths import CONFIG_PATH, ENV_PATH

logger = get_logger(__name__)

ENV_PREFIX = "MAILWIRE_"

# environment variable suffix -> (section, field)
ENV_OVERRIDES = {
    "IMAP_SERVER": ("account", "imap_server"),
    "IMAP_PORT": ("account", "imap_port"),
    "SMTP_SERVER": ("account", "smtp_server"),
    "SMTP_PORT": ("account", "smtp_port"),
    "USERNAME": ("account", "username"),
    "EMAIL": ("account", "email"),
    "USE_TLS": ("account", "use_tls"),
    "CONNECT_TIMEOUT": ("network", "connect_timeout"),
    "READ_TIMEOUT": ("network", "read_timeout"),
    "LOG_LEVEL": ("logging", "log_level"),
}


class AccountConfig(BaseModel):
    """Pydantic model for account configuration."""

    imap_server: str = ""
    imap_port: int = 993
    smtp_server: str = ""
    smtp_port: int = 587
    username: str = ""
    email: str = ""
    use_tls: bool = True


class NetworkConfig(BaseModel):
    """Pydantic model for socket timeouts."""

    connect_timeout: float = 10.0  # in seconds
    read_timeout: float = 30.0  # in seconds


class FetchConfig(BaseModel):
    """Pydantic model for fetch sizing."""

    batch_size: int = 25
    recent_count: int = 50
    default_folder: str = "INBOX"


class LoggingConfig(BaseModel):
    """Pydantic model for logging settings."""

    log_level: str = "INFO"
    console_level: str = "WARNING"
    log_to_file: bool = False


class AppConfig(BaseModel):
    """Pydantic model for overall application configuration."""

    version: str = "0.1.0"
    account: AccountConfig = Field(default_factory=AccountConfig)
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class ConfigManager:
    """Manages persistent application configuration."""

    def __init__(
        self,
        config_path: Optional[Path] = None,
        env_file: Optional[Path] = None,
        use_env: bool = True,
    ):
        self.path = Path(config_path) if config_path else CONFIG_PATH
        self.use_env = use_env

        if use_env:
            load_dotenv(env_file or ENV_PATH, override=False)

        self.config = self._load_or_create_config()
        if use_env:
            self._apply_env_overrides()

        logger.info(f"Configuration loaded from {self.path}")

    def _load_or_create_config(self) -> AppConfig:
        """Load configuration from file or create default if not present."""

        if not self.path.exists():
            logger.info("No config file found, creating default configuration.")
            config = AppConfig()
            self._save_config(config)
            return config

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            config = AppConfig(**data)
            logger.debug("Configuration successfully loaded and validated.")
            return config

        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse config file: {e}")
            raise InvalidConfigError(
                f"Configuration file is not valid JSON: {str(e)}"
            ) from e
        except (TypeError, ValidationError) as e:
            logger.error(f"Failed to validate config file: {e}")
            raise InvalidConfigError(
                f"Configuration data does not match expected schema: {str(e)}"
            ) from e
        except OSError as e:
            raise FileSystemError(f"Failed to read configuration file: {str(e)}") from e

    def _apply_env_overrides(self) -> None:
        """Overlay MAILWIRE_* environment variables onto the loaded config."""

        data = self.config.model_dump()
        applied = []

        for suffix, (section, key) in ENV_OVERRIDES.items():
            value = os.getenv(ENV_PREFIX + suffix)
            if value is None or value == "":
                continue
            data[section][key] = value
            applied.append(ENV_PREFIX + suffix)

        if not applied:
            return

        try:
            self.config = AppConfig(**data)
        except ValidationError as e:
            raise InvalidConfigError(
                f"Environment overrides are invalid: {str(e)}",
                details={"variables": applied},
            ) from e

        logger.debug("Applied environment overrides", extra={"variables": applied})

    def _save_config(self, config: Optional[AppConfig] = None) -> None:
        """Save the current configuration to file."""

        config = config or self.config

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(config.model_dump(), f, indent=2, ensure_ascii=False)
            logger.debug("Configuration successfully saved.")
        except OSError as e:
            raise FileSystemError(
                f"Failed to write configuration file: {str(e)}"
            ) from e

    @log_call
    def get_account_config(self) -> AccountConfig:
        """Return the account section."""
        return self.config.account

    @log_call
    def get_password(self) -> Optional[str]:
        """Return the account password from the environment, if set.

        Passwords never live in config.json.
        """
        return os.getenv(ENV_PREFIX + "PASSWORD") or None

    @log_call
    def require_account(self) -> AccountConfig:
        """Return the account section, failing when servers are unset."""

        account = self.config.account
        missing = [
            name
            for name in ("imap_server", "smtp_server", "username")
            if not getattr(account, name)
        ]
        if missing:
            raise MissingConfigError(
                f"Account settings missing: {', '.join(missing)}",
                details={"missing": missing, "path": str(self.path)},
            )
        return account

    @log_call
    def set_config(self, key_path: str, value: Any, persist: bool = True) -> None:
        """Set a configuration value using dot-separated key path."""

        try:
            keys = key_path.split(".")
            candidate = self.config.model_copy(deep=True)
            obj = candidate

            for key in keys[:-1]:
                if not hasattr(obj, key):
                    raise MissingConfigError(
                        f"Configuration path '{key_path}' is invalid: '{key}' not found"
                    )
                obj = getattr(obj, key)

            if not hasattr(obj, keys[-1]):
                raise MissingConfigError(
                    f"Configuration key '{keys[-1]}' does not exist in path '{key_path}'"
                )

            setattr(obj, keys[-1], value)

            # revalidate so a bad value never reaches disk
            self.config = AppConfig(**candidate.model_dump(warnings=False))

            if persist:
                self._save_config()

            logger.info(f"Config key '{key_path}' updated.")

        except MailwireError:
            raise
        except ValidationError as e:
            raise InvalidConfigError(
                f"Invalid value for '{key_path}': {str(e)}"
            ) from e
        except Exception as e:
            raise ConfigurationError(
                f"Failed to set configuration key '{key_path}': {str(e)}"
            ) from e

    @log_call
    def reset_to_defaults(self) -> None:
        """Reset configuration to default values."""

        logger.warning("Resetting configuration to default values.")
        self.config = AppConfig()
        self._save_config()
