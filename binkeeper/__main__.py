"""
Entry point for running BinKeeper CLI as a module.

Usage: python -m binkeeper [command] [options]
"""

from binkeeper.cli.parser import main

if __name__ == "__main__":
    main()
