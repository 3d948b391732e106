"""Configuration loader for the device sync tool."""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

CONFLICT_POLICIES = ("ask", "keep_local", "keep_remote", "skip")

DEFAULT_BASE_FILE = ".mcu_sync_base.db"
DEFAULT_CONFIG_FILE = "mcu_sync.yaml"


class ConfigError(Exception):
    """Raised when config validation fails."""

    pass


class Config:
    """Configuration object for the sync tool."""

    def __init__(self, config_dict: Dict[str, Any], config_path: Optional[str] = None):
        """Initialize config from dictionary.

        Args:
            config_dict: Parsed configuration
            config_path: File the configuration was read from, if any
        """
        self._config = config_dict
        self.config_path = config_path
        self._validate()

    def _validate(self) -> None:
        """Validate required configuration fields."""
        if "sync_dir" not in self._config:
            raise ConfigError("Missing required config key: sync_dir")
        if not isinstance(self._config["sync_dir"], str):
            raise ConfigError("Config key 'sync_dir' must be a string")

        device = self._config.get("device")
        if not isinstance(device, dict) or "url" not in device:
            raise ConfigError("Missing required config key: device.url")
        if not isinstance(device["url"], str):
            raise ConfigError("Config key 'device.url' must be a string")

        transpile = self._config.get("transpile")
        if transpile is None:
            self._config["transpile"] = {}
        elif isinstance(transpile, bool):
            # shorthand: "transpile: true"
            self._config["transpile"] = {"enabled": transpile}
        elif not isinstance(transpile, dict):
            raise ConfigError("Config key 'transpile' must be a mapping or true/false")

        logging_section = self._config.get("logging")
        if logging_section is None:
            self._config["logging"] = {}
        elif not isinstance(logging_section, dict):
            raise ConfigError("Config key 'logging' must be a mapping")

        exclude = self._config.get("exclude", [])
        if exclude is not None and not isinstance(exclude, list):
            raise ConfigError("Config key 'exclude' must be a list of globs")

        if self.conflict_policy not in CONFLICT_POLICIES:
            raise ConfigError(
                f"Invalid conflict_policy '{self.conflict_policy}', "
                f"expected one of: {', '.join(CONFLICT_POLICIES)}"
            )

        for key in ("restart", "monitor"):
            value = self._config.get(key)
            if value is not None and not isinstance(value, bool):
                raise ConfigError(f"Config key '{key}' must be true, false or null")

    @property
    def sync_dir(self) -> str:
        """Get local sync root."""
        return self._config["sync_dir"]

    @property
    def device_url(self) -> str:
        """Get device base URL."""
        return self._config["device"]["url"].rstrip("/")

    @property
    def device_username(self) -> Optional[str]:
        """Get device HTTP username."""
        return self._config["device"].get("username")

    @property
    def device_password(self) -> Optional[str]:
        """Get device HTTP password."""
        return self._config["device"].get("password")

    @property
    def device_timeout(self) -> float:
        """Get device request timeout in seconds."""
        return self._config["device"].get("timeout", 30)

    @property
    def base_file(self) -> str:
        """Get path of the persisted base snapshot."""
        return self._config.get("base_file", DEFAULT_BASE_FILE)

    @property
    def exclude(self) -> List[str]:
        """Get exclusion globs, including the tool's own files."""
        items = [i for i in (self._config.get("exclude") or []) if i]
        own_files = [f"**/{Path(self.base_file).name}"]
        if self.config_path:
            own_files.append(f"**/{Path(self.config_path).name}")
        return items + [f for f in own_files if f not in items]

    @property
    def transpile_enabled(self) -> bool:
        """Get transpile enabled flag."""
        return self._config.get("transpile", {}).get("enabled", False)

    @property
    def transpile_command(self) -> Optional[str]:
        """Get command used to transform source files before upload."""
        return self._config.get("transpile", {}).get("command")

    @property
    def transpile_extensions(self) -> List[str]:
        """Get extensions that qualify for transpiling."""
        items = self._config.get("transpile", {}).get("extensions", [".js"])
        return [i for i in (items or []) if i]

    @property
    def conflict_policy(self) -> str:
        """Get conflict policy (ask, keep_local, keep_remote or skip)."""
        return self._config.get("conflict_policy", "ask")

    @property
    def restart(self) -> Optional[bool]:
        """Get restart-after-sync answer; None means ask."""
        return self._config.get("restart")

    @property
    def monitor(self) -> Optional[bool]:
        """Get monitor-after-sync answer; None means ask."""
        return self._config.get("monitor")

    @property
    def dry_run(self) -> bool:
        """Get dry run flag."""
        return self._config.get("dry_run", False)

    @property
    def log_file_path(self) -> str:
        """Get log file path."""
        return self._config.get("logging", {}).get("file_path", "mcu_sync.log")

    @property
    def log_level(self) -> str:
        """Get log level."""
        return self._config.get("logging", {}).get("level", "INFO")

    @property
    def log_max_size_mb(self) -> int:
        """Get max log file size before rotation."""
        return self._config.get("logging", {}).get("max_size_mb", 10)

    @property
    def log_backup_count(self) -> int:
        """Get number of rotated log files to keep."""
        return self._config.get("logging", {}).get("backup_count", 5)

    @property
    def log_rotation_enabled(self) -> bool:
        """Get log rotation flag."""
        return self._config.get("logging", {}).get("rotation_enabled", True)

    def set_override(self, key: str, value: Any) -> None:
        """Override a top-level or dotted config key (used for CLI flags)."""
        target = self._config
        parts = key.split(".")
        for part in parts[:-1]:
            if not isinstance(target.get(part), dict):
                target[part] = {}
            target = target[part]
        target[parts[-1]] = value


def load_config(config_path: str) -> Config:
    """Load configuration from YAML file.

    Args:
        config_path: Path to the YAML config file

    Returns:
        Config object

    Raises:
        ConfigError: If config file doesn't exist or is invalid
        yaml.YAMLError: If YAML parsing fails
    """
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    with open(path, "r", encoding="utf-8") as f:
        config_dict = yaml.safe_load(f) or {}

    if not isinstance(config_dict, dict):
        raise ConfigError(f"Config file must contain a mapping: {config_path}")

    return Config(config_dict, config_path=str(path))


def load_config_from_env(env_var: str = "MCU_SYNC_CONFIG") -> Config:
    """Load configuration from environment variable.

    Args:
        env_var: Name of environment variable containing config path

    Returns:
        Config object

    Raises:
        ConfigError: If environment variable not set or config invalid
    """
    config_path = os.getenv(env_var)
    if not config_path:
        raise ConfigError(f"Environment variable {env_var} not set")

    return load_config(config_path)
