"""
Entry point for running the nwbuild CLI as a module.

Usage: python -m nwbuilder [SRC_DIR ...] [options]
"""

from nwbuilder.cli.parser import main

if __name__ == "__main__":
    main()
