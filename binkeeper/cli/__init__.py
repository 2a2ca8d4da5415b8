"""
BinKeeper command-line interface.

Usage: binkeeper [command] [options]
"""

from .parser import CLI, main

__all__ = ["CLI", "main"]
