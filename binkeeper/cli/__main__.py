"""
Entry point for running BinKeeper CLI as a module.

Usage: python -m binkeeper.cli [command] [options]
"""

from .parser import main

if __name__ == "__main__":
    main()
