"""YAML configuration parser for BinKeeper.

This module provides parsing and validation for binkeeper.yaml configuration files.

Example binkeeper.yaml:

    cli_path: ""            # explicit executable; disables management
    auto_update: true
    update_mode: prompt     # prompt | auto
    storage_dir: ~/.binkeeper
    timeout: 30
    tool:
      name: typmark-cli
      base_name: typmark
      releases_url: https://api.github.com/repos/miko-misa/typmark/releases/latest
      user_agent: binkeeper
      version_arg: --version
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from binkeeper.core.directory import get_global_cache_dir
from binkeeper.core.exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "binkeeper.yaml"
UPDATE_MODES = ("prompt", "auto")
DEFAULT_RELEASES_URL = "https://api.github.com/repos/miko-misa/typmark/releases/latest"


@dataclass
class ToolSpec:
    """The managed tool and where its releases are published."""

    name: str = "typmark-cli"
    base_name: str = "typmark"  # prefix for locator heuristics
    releases_url: str = DEFAULT_RELEASES_URL
    user_agent: str = "binkeeper"
    version_arg: str = "--version"


@dataclass
class ManagerConfig:
    """Complete BinKeeper configuration."""

    cli_path: str = ""
    auto_update: bool = False
    update_mode: str = "prompt"
    storage_dir: Optional[Path] = None
    timeout: int = 30
    tool: ToolSpec = field(default_factory=ToolSpec)

    def resolved_storage_dir(self) -> Path:
        """Storage directory with '~' expanded, or the global default."""
        if self.storage_dir is None:
            return get_global_cache_dir()
        return Path(self.storage_dir).expanduser()

    @property
    def has_explicit_path(self) -> bool:
        return bool(self.cli_path.strip())


def parse_config(config_path: Path) -> ManagerConfig:
    """
    Parse binkeeper.yaml configuration file.

    Args:
        config_path: Path to binkeeper.yaml

    Returns:
        Parsed and validated configuration

    Raises:
        ConfigError: If configuration is invalid
    """
    if not config_path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax: {e}") from e

    if data is None:
        return ManagerConfig()

    return parse_config_data(data)


def load_config(config_path: Optional[Path] = None) -> ManagerConfig:
    """
    Load configuration, falling back to defaults when no file exists.

    An explicitly given path must exist; the default ./binkeeper.yaml is
    optional.
    """
    if config_path is not None:
        return parse_config(config_path)

    default_path = Path.cwd() / DEFAULT_CONFIG_FILE
    if not default_path.exists():
        logger.debug(f"Config file not found (optional): {default_path}")
        return ManagerConfig()
    return parse_config(default_path)


def parse_config_data(data: Any) -> ManagerConfig:
    """Parse and validate configuration data."""
    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping")

    cli_path = data.get("cli_path") or ""
    if not isinstance(cli_path, str):
        raise ConfigError("cli_path must be a string")

    auto_update = data.get("auto_update", False)
    if not isinstance(auto_update, bool):
        raise ConfigError("auto_update must be true or false")

    update_mode = data.get("update_mode", "prompt")
    if update_mode not in UPDATE_MODES:
        raise ConfigError(
            f"Invalid update_mode: {update_mode} (expected one of {list(UPDATE_MODES)})"
        )

    timeout = data.get("timeout", 30)
    if isinstance(timeout, bool) or not isinstance(timeout, int) or timeout <= 0:
        raise ConfigError("timeout must be a positive integer")

    storage_dir = data.get("storage_dir")
    if storage_dir is not None and not isinstance(storage_dir, str):
        raise ConfigError("storage_dir must be a string")

    return ManagerConfig(
        cli_path=cli_path,
        auto_update=auto_update,
        update_mode=update_mode,
        storage_dir=Path(storage_dir) if storage_dir else None,
        timeout=timeout,
        tool=_parse_tool(data.get("tool") or {}),
    )


def _parse_tool(data: Dict[str, Any]) -> ToolSpec:
    """Parse tool section."""
    if not isinstance(data, dict):
        raise ConfigError("tool must be a mapping")

    defaults = ToolSpec()
    values = {}
    for field_name in ("name", "base_name", "releases_url", "user_agent", "version_arg"):
        value = data.get(field_name, getattr(defaults, field_name))
        if not isinstance(value, str) or not value.strip():
            raise ConfigError(f"tool.{field_name} must be a non-empty string")
        values[field_name] = value.strip()

    # A custom tool name without an explicit base_name gets a derived prefix
    if "name" in data and "base_name" not in data:
        values["base_name"] = values["name"].split("-", 1)[0]

    return ToolSpec(**values)


__all__ = [
    "DEFAULT_CONFIG_FILE",
    "DEFAULT_RELEASES_URL",
    "ToolSpec",
    "ManagerConfig",
    "parse_config",
    "load_config",
    "parse_config_data",
]
