"""
BinKeeper CLI argument parser.

This module implements the command-line interface for BinKeeper using argparse.
"""

import argparse
import importlib
import logging
import sys
from pathlib import Path
from typing import List, Optional

from binkeeper import __version__

logger = logging.getLogger(__name__)


class CLI:
    """BinKeeper command-line interface."""

    def __init__(self):
        """Initialize CLI with argument parser."""
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """
        Create argument parser with all subcommands.

        Returns:
            Configured ArgumentParser instance
        """
        parser = argparse.ArgumentParser(
            prog="binkeeper",
            description="BinKeeper - managed lifecycle for external CLI tools",
            epilog='Use "binkeeper COMMAND --help" for command-specific help',
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )

        # Global options
        parser.add_argument(
            "--version", action="version", version=f"BinKeeper {__version__}"
        )
        parser.add_argument(
            "--verbose", "-v", action="store_true", help="Enable verbose output"
        )
        parser.add_argument(
            "--quiet",
            "-q",
            action="store_true",
            help="Enable minimal output (errors only)",
        )
        parser.add_argument(
            "--config",
            type=Path,
            metavar="PATH",
            help="Path to configuration file (default: ./binkeeper.yaml)",
        )
        parser.add_argument(
            "--cli-path",
            metavar="PATH",
            help="Use this executable instead of a managed one",
        )
        parser.add_argument(
            "--storage-dir",
            metavar="DIR",
            help="Directory holding the managed executable (default: ~/.binkeeper)",
        )

        # Subcommands
        subparsers = parser.add_subparsers(
            dest="command", help="Available commands", metavar="COMMAND"
        )

        self._add_ensure_command(subparsers)
        self._add_update_command(subparsers)
        self._add_status_command(subparsers)
        self._add_version_command(subparsers)

        return parser

    def _add_ensure_command(self, subparsers):
        """Add 'ensure' subcommand."""
        parser = subparsers.add_parser(
            "ensure",
            help="Install the executable if missing and print its path",
            description="Make sure the executable exists (installing or updating "
            "it according to policy) and print its path",
        )
        parser.add_argument(
            "--auto-update",
            action="store_true",
            help="Check for a newer release even if auto_update is off in config",
        )
        parser.add_argument(
            "--json",
            action="store_true",
            help='Print {"path": ..., "managed": ...} as JSON',
        )

    def _add_update_command(self, subparsers):
        """Add 'update' subcommand."""
        parser = subparsers.add_parser(
            "update",
            help="Update the managed executable",
            description="Install the latest release of the managed executable",
        )
        parser.add_argument(
            "--yes", "-y", action="store_true", help="Don't ask for confirmation"
        )
        parser.add_argument(
            "--force",
            action="store_true",
            help="Reinstall even if the installed version is current",
        )

    def _add_status_command(self, subparsers):
        """Add 'status' subcommand."""
        parser = subparsers.add_parser(
            "status",
            help="Show executable path and version status",
            description="Show where the executable is and compare its version "
            "with the latest release",
        )
        parser.add_argument(
            "--offline",
            action="store_true",
            help="Skip the latest-release lookup",
        )

    def _add_version_command(self, subparsers):
        """Add 'version' subcommand."""
        subparsers.add_parser(
            "version",
            help="Print the executable's version",
            description="Run the executable's version query and print the result",
        )

    def run(self, argv: Optional[List[str]] = None) -> int:
        """
        Parse arguments and run command.

        Args:
            argv: Command-line arguments (default: sys.argv[1:])

        Returns:
            Exit code (0 for success, non-zero for error)
        """
        args = self.parser.parse_args(argv)

        self._configure_logging(args)

        if not args.command:
            self.parser.print_help()
            return 0

        return self._dispatch_command(args)

    def _configure_logging(self, args):
        """
        Configure logging based on verbose/quiet flags.

        Args:
            args: Parsed arguments with verbose/quiet flags
        """
        if args.verbose:
            level = logging.DEBUG
            format_str = "%(levelname)s [%(name)s] %(message)s"
        elif args.quiet:
            level = logging.ERROR
            format_str = "%(levelname)s: %(message)s"
        else:
            level = logging.INFO
            format_str = "%(message)s"

        logging.basicConfig(
            level=level,
            format=format_str,
            force=True,  # Reconfigure if already configured
        )

    def _dispatch_command(self, args) -> int:
        """
        Dispatch to appropriate command handler.

        Args:
            args: Parsed arguments with command field

        Returns:
            Exit code from command handler
        """
        command_map = {
            "ensure": "binkeeper.cli.commands.ensure",
            "update": "binkeeper.cli.commands.update",
            "status": "binkeeper.cli.commands.status",
            "version": "binkeeper.cli.commands.version",
        }

        module_name = command_map.get(args.command)
        if not module_name:
            logger.error(f"Unknown command: {args.command}")
            return 1

        module = importlib.import_module(module_name)
        return module.run(args)


def main():
    """Main entry point for CLI."""
    cli = CLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
