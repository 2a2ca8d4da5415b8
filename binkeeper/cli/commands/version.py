"""
Version command implementation.

Prints the version reported by the resolved executable.
"""

from binkeeper.cli.utils import build_manager, safe_print
from binkeeper.core.exceptions import BinKeeperError


def run(args) -> int:
    try:
        version = build_manager(args).local_version()
    except BinKeeperError as e:
        safe_print(f"Error: {e.describe()}")
        return 1

    if not version:
        safe_print("Tool version unavailable.")
        return 1
    print(version)
    return 0
