"""Dependency resolution and acquisition for a base game version plus a mod loader."""

__version__ = "1.0.0"

from .config import LauncherConfig
from .errors import LauncherError

__all__ = ["LauncherConfig", "LauncherError", "__version__"]
