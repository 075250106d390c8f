"""Library conflict detection between a base descriptor and its overlay.

The overlay (mod loader) always wins: when both descriptors list the same
``group:artifact`` at different versions, the base entry is dropped.
"""

import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set

from pydantic import BaseModel, ConfigDict

from ..errors import PatchRestoreFailure
from ..utils.fs import write_atomic
from .models import Coordinate, VersionDescriptor

logger = logging.getLogger(__name__)


class Conflict(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    base_version: str
    overlay_version: str


def find_conflicts(base: VersionDescriptor, overlay: VersionDescriptor) -> List[Conflict]:
    """Overlay libraries whose ``group:artifact`` the base declares at another version."""
    base_coordinates: Dict[str, List[str]] = {}
    for lib in base.libraries:
        coordinate = lib.coordinate
        if coordinate is None:
            continue
        base_coordinates.setdefault(coordinate.key, []).append(lib.name)

    conflicts: List[Conflict] = []
    seen: Set[str] = set()
    for lib in overlay.libraries:
        coordinate = lib.coordinate
        if coordinate is None or coordinate.key in seen:
            continue
        differing = [name for name in base_coordinates.get(coordinate.key, ()) if name != lib.name]
        if differing:
            conflicts.append(Conflict(key=coordinate.key, base_version=differing[0],
                                      overlay_version=lib.name))
            seen.add(coordinate.key)
    return conflicts


def resolve_conflicts(base: VersionDescriptor, overlay: VersionDescriptor,
                      conflicts: List[Conflict]) -> VersionDescriptor:
    """Return a copy of ``base`` without the conflicting libraries."""
    resolved = base.model_copy(deep=True)
    keys = {conflict.key for conflict in conflicts}

    kept = []
    for lib in resolved.libraries:
        coordinate = lib.coordinate
        if coordinate is not None and coordinate.key in keys:
            logger.info("Resolved conflict for %s: preferring %s over %s", coordinate.key,
                        next(c.overlay_version for c in conflicts if c.key == coordinate.key), lib.name)
            continue
        kept.append(lib)
    resolved.libraries = kept

    if resolved.assetIndex is None and overlay.assetIndex is not None:
        resolved.assetIndex = overlay.assetIndex.model_copy()
        logger.info("Copied missing assetIndex from %s into %s", overlay.id, base.id)
    return resolved


def reconcile(base: VersionDescriptor, overlay: VersionDescriptor) -> "PatchOutcome":
    """Conflict-free base plus an overlay that carries an asset index whenever either side has one."""
    conflicts = find_conflicts(base, overlay)
    resolved = resolve_conflicts(base, overlay, conflicts)
    if overlay.assetIndex is None and base.assetIndex is not None:
        overlay = overlay.model_copy(deep=True)
        overlay.assetIndex = base.assetIndex.model_copy()
        logger.info("Copied missing assetIndex from %s into %s", base.id, overlay.id)
    return PatchOutcome(conflicts=conflicts, base=resolved, overlay=overlay)


class PatchOutcome(BaseModel):
    conflicts: List[Conflict]
    base: VersionDescriptor
    overlay: VersionDescriptor
    restored: List[Path] = []
    restore_error: Optional[str] = None


class DescriptorPatcher:
    """Applies conflict resolution to on-disk descriptor working copies.

    Originals are kept as raw bytes and written back verbatim.
    """

    def __init__(self):
        self.backups: Dict[Path, bytes] = {}

    def backup(self, path: Path) -> None:
        if path not in self.backups:
            self.backups[path] = path.read_bytes()
            logger.debug("Backed up original descriptor %s", path)

    def apply(self, base_path: Path, overlay_path: Path) -> PatchOutcome:
        self.backup(base_path)
        self.backup(overlay_path)

        base = VersionDescriptor.model_validate_json(self.backups[base_path])
        overlay = VersionDescriptor.model_validate_json(self.backups[overlay_path])
        outcome = reconcile(base, overlay)

        if outcome.conflicts:
            logger.info("Found %d library conflicts between %s and %s",
                        len(outcome.conflicts), base.id, overlay.id)
        else:
            logger.info("No library conflicts found")
        for path, original, working in ((base_path, base, outcome.base), (overlay_path, overlay, outcome.overlay)):
            if working.to_json_dict() != original.to_json_dict():
                write_atomic(path, json.dumps(working.to_json_dict(), indent=2).encode("utf-8"))
        return outcome

    def restore(self) -> List[Path]:
        restored: List[Path] = []
        failures: List[str] = []
        for path, content in self.backups.items():
            try:
                if not path.exists() or path.read_bytes() != content:
                    write_atomic(path, content)
                restored.append(path)
                logger.debug("Restored original descriptor %s", path)
            except OSError as e:
                failures.append(f"{path}: {e}")
        self.backups.clear()
        if failures:
            raise PatchRestoreFailure(failures)
        return restored

    @contextmanager
    def patched(self, base_path: Path, overlay_path: Path) -> Iterator[PatchOutcome]:
        """Reconcile the working copies for the duration of the block.

        Originals are restored on every exit path; a failed restore is logged
        and recorded on the outcome rather than raised.
        """
        outcome: Optional[PatchOutcome] = None
        try:
            outcome = self.apply(base_path, overlay_path)
            yield outcome
        finally:
            try:
                restored = self.restore()
                if outcome is not None:
                    outcome.restored = restored
            except PatchRestoreFailure as e:
                logger.error("Descriptor restore failed, launcher state may be inconsistent: %s", e)
                if outcome is not None:
                    outcome.restore_error = str(e)
