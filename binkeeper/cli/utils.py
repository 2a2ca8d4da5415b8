"""
Shared utilities for CLI commands.

Provides common functionality used across multiple CLI commands: building a
configured manager from parsed arguments and console-safe printing.
"""

import logging
from pathlib import Path
from typing import Optional

from binkeeper.config.parser import ManagerConfig, load_config
from binkeeper.core.download import DownloadProgress, format_progress
from binkeeper.manager.controller import CliManager

logger = logging.getLogger(__name__)


def load_effective_config(args) -> ManagerConfig:
    """
    Load configuration and apply command-line overrides.

    Args:
        args: Parsed arguments with config, cli_path, storage_dir, auto_update

    Raises:
        ConfigError: If the configuration file is invalid
    """
    config = load_config(args.config)

    if getattr(args, "cli_path", None):
        config.cli_path = args.cli_path
    if getattr(args, "storage_dir", None):
        config.storage_dir = Path(args.storage_dir)
    if getattr(args, "auto_update", False):
        config.auto_update = True

    return config


def prompt_update(current: str, latest: str) -> bool:
    """Ask on the console whether to install an available update."""
    try:
        response = (
            input(f"Update available ({current or 'unknown'} -> {latest}). Update? [Y/n] ")
            .strip()
            .lower()
        )
    except (EOFError, KeyboardInterrupt):
        print()
        return False
    return response in ("", "y", "yes")


def print_progress(progress: DownloadProgress) -> None:
    logger.info(format_progress(progress))


def build_manager(args, config: Optional[ManagerConfig] = None) -> CliManager:
    """Create a CliManager wired to console prompts and progress output."""
    if config is None:
        config = load_effective_config(args)
    return CliManager(
        config,
        decide_update=prompt_update,
        progress_callback=print_progress,
    )


def safe_print(message: str, file=None):
    """
    Print message with safe encoding handling for Windows console.

    Falls back to ASCII-safe characters if Unicode can't be encoded.
    """
    try:
        print(message, file=file)
    except UnicodeEncodeError:
        print(message.encode("ascii", "replace").decode("ascii"), file=file)
