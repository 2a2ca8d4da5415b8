"""
Status command implementation.

Shows where the executable lives, whether it is managed, and how its version
compares with the latest release.
"""

import logging

from binkeeper.cli.utils import build_manager, load_effective_config, safe_print
from binkeeper.core.exceptions import BinKeeperError

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the status command.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    try:
        config = load_effective_config(args)
        manager = build_manager(args, config)
        artifact = manager.resolve()

        safe_print(f"Tool:      {config.tool.name}")
        safe_print(f"Path:      {artifact.path}")
        safe_print(f"Managed:   {'yes' if artifact.managed else 'no'}")
        safe_print(f"Installed: {'yes' if artifact.path.exists() else 'no'}")

        if args.offline:
            version = manager.local_version() if artifact.path.exists() else ""
            safe_print(f"Version:   {version or 'unknown'}")
            return 0

        update = manager.check_for_update()
    except BinKeeperError as e:
        safe_print(f"Error: {e.describe()}")
        return 1

    if update is None:
        safe_print(f"Version:   {manager.local_version()} (up to date)")
    else:
        safe_print(f"Version:   {update.current_version or 'unknown'}")
        safe_print(f"Latest:    {update.latest_version}")
    return 0
