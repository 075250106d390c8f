"""Version descriptors, rules and conflict resolution.

Managers live in ``loaderkit.versions.manager`` and
``loaderkit.versions.download_manager``; they are not re-exported here so the
loader and asset packages can import the models without a cycle.
"""

from .conflicts import Conflict, DescriptorPatcher, find_conflicts, reconcile, resolve_conflicts
from .models import AssetIndex, Coordinate, Library, VersionDescriptor, VersionInfo, VersionManifest
from .rules import PlatformInfo, RuleEvaluator

__all__ = [
    "Conflict", "DescriptorPatcher", "find_conflicts", "reconcile", "resolve_conflicts",
    "AssetIndex", "Coordinate", "Library", "VersionDescriptor", "VersionInfo", "VersionManifest",
    "PlatformInfo", "RuleEvaluator",
]
