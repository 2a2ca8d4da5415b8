"""
Ensure command implementation.

Makes sure the managed executable is present (installing or updating it per
policy) and prints where it is.
"""

import logging

from binkeeper.cli.utils import build_manager, safe_print
from binkeeper.core.exceptions import BinKeeperError

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the ensure command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, 1 for error)
    """
    try:
        manager = build_manager(args)
        artifact = manager.ensure()
    except BinKeeperError as e:
        safe_print(f"Error: {e.describe()}")
        return 1

    if getattr(args, "json", False):
        import json

        print(json.dumps({"path": str(artifact.path), "managed": artifact.managed}))
    else:
        kind = "managed" if artifact.managed else "configured"
        safe_print(f"{artifact.path} ({kind})")
    return 0
