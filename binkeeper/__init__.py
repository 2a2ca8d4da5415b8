"""
BinKeeper - managed lifecycle for external command-line tools.

BinKeeper locates, downloads, updates and installs a platform-specific
executable that an application depends on but does not embed.
"""

__version__ = "0.1.0"
