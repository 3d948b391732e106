"""Two-way sync between a local folder and a microcontroller's filesystem."""

from mcu_sync.config_loader import Config, ConfigError, load_config
from mcu_sync.logging_setup import get_logger, setup_logging

__all__ = [
    "Config",
    "ConfigError",
    "load_config",
    "setup_logging",
    "get_logger",
]
