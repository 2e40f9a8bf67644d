"""
Default Packager and Launcher implementations.
"""

from .launcher import NwLauncher
from .packager import CopyPackager

__all__ = ["NwLauncher", "CopyPackager"]
