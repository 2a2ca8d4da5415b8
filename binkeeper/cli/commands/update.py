"""
Update command implementation.

Installs the latest release of the managed executable.
"""

import logging

from binkeeper.cli.utils import build_manager, load_effective_config, safe_print
from binkeeper.core.exceptions import BinKeeperError

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the update command.

    Without --force only an outdated (or unknown) version is replaced; the
    user is asked first unless --yes is given.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    try:
        config = load_effective_config(args)
        manager = build_manager(args, config)

        if not args.force:
            update = manager.check_for_update()
            if update is None:
                safe_print(f"{config.tool.name} is up to date")
                return 0
            safe_print(
                f"New version available: {update.latest_version} "
                f"(current: {update.current_version or 'unknown'})"
            )
            if not args.yes and not manager.decide_update(
                update.current_version, update.latest_version
            ):
                print("Update cancelled")
                return 0

        artifact = manager.update()
    except BinKeeperError as e:
        safe_print(f"Error: {e.describe()}")
        return 1

    safe_print(f"Updated {config.tool.name} at {artifact.path}")
    return 0
