"""
nwbuild command-line interface.
"""

from .parser import CLI, main
from . import utils

__all__ = ["CLI", "main", "utils"]
