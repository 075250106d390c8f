"""Mod loader (overlay) support."""

from .modloader_manager import ModLoaderManager

__all__ = ["ModLoaderManager"]
