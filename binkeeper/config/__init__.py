"""Configuration loading for BinKeeper."""

from .parser import (
    DEFAULT_CONFIG_FILE,
    ToolSpec,
    ManagerConfig,
    parse_config,
    load_config,
    parse_config_data,
)

__all__ = [
    "DEFAULT_CONFIG_FILE",
    "ToolSpec",
    "ManagerConfig",
    "parse_config",
    "load_config",
    "parse_config_data",
]
