"""Content-addressable asset store.

Objects live at ``objects/<hash[:2]>/<hash>`` and are described by index
documents under ``indexes/<id>.json``. Legacy engines that cannot address
content by hash get a flat copy under ``virtual/legacy``.
"""

import asyncio
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

import aiofiles
from pydantic import BaseModel, Field

from ..config import LauncherConfig
from ..downloads import BatchResult, DownloadEngine, DownloadTask, file_sha1
from ..errors import MetadataUnavailable
from ..utils.fs import copy_atomic, ensure_dir, is_within
from ..utils.progress import ProgressNotifier
from ..versions.models import AssetIndex

logger = logging.getLogger(__name__)

NOT_FOUND = "not_found"
HASH_MISMATCH = "hash_mismatch"
IO_ERROR = "io_error"

SOUND_PREFIXES = ("minecraft/sounds/", "minecraft/sound/")


class VerifyResult(BaseModel):
    valid: bool
    reason: Optional[str] = None
    expected: Optional[str] = None
    actual: Optional[str] = None
    message: Optional[str] = None


class AssetRef(BaseModel):
    name: str
    hash: str


class IndexVerification(BaseModel):
    index_id: Optional[str] = None
    total: int = 0
    valid: int = 0
    invalid: int = 0
    missing: int = 0
    missing_objects: List[AssetRef] = Field(default_factory=list)
    invalid_objects: List[AssetRef] = Field(default_factory=list)

    @property
    def damaged(self) -> List[AssetRef]:
        return self.missing_objects + self.invalid_objects


class RepairResult(BaseModel):
    repaired: List[AssetRef] = Field(default_factory=list)
    still_missing: List[AssetRef] = Field(default_factory=list)


class AssetStore:
    def __init__(self, assets_dir: Path, engine: Optional[DownloadEngine] = None, *,
                 resources_url: str = LauncherConfig.RESOURCES_URL,
                 resources_dir: Optional[Path] = None,
                 notifier: Optional[ProgressNotifier] = None,
                 progress_batch: int = 500):
        self.assets_dir = Path(assets_dir)
        self.engine = engine
        self.resources_url = resources_url.rstrip("/")
        self.resources_dir = resources_dir or (self.assets_dir.parent / "resources")
        self.notifier = notifier or ProgressNotifier()
        self.progress_batch = progress_batch

    @classmethod
    def from_config(cls, config: LauncherConfig, engine: Optional[DownloadEngine] = None,
                    notifier: Optional[ProgressNotifier] = None) -> "AssetStore":
        return cls(config.assets_dir, engine, resources_url=config.resources_url,
                   resources_dir=config.resources_dir, notifier=notifier,
                   progress_batch=config.progress_batch)

    @property
    def indexes_dir(self) -> Path:
        return self.assets_dir / "indexes"

    @property
    def objects_dir(self) -> Path:
        return self.assets_dir / "objects"

    @property
    def virtual_dir(self) -> Path:
        return self.assets_dir / "virtual" / "legacy"

    def object_path(self, object_hash: str) -> Path:
        return self.objects_dir / object_hash[:2] / object_hash

    def object_url(self, object_hash: str) -> str:
        return f"{self.resources_url}/{object_hash[:2]}/{object_hash}"

    def index_path(self, index_id: str) -> Path:
        return self.indexes_dir / f"{index_id}.json"

    def _progress(self, phase: str, done: int, total: int) -> None:
        if done % self.progress_batch == 0 or done == total:
            logger.info("%s progress: %d/%d", phase, done, total)
            self.notifier.emit(phase, done, total)

    async def verify(self, path: Path, expected_hash: str) -> VerifyResult:
        """Check a file against its expected SHA-1 without reading it whole."""
        path = Path(path)
        if not path.is_file():
            return VerifyResult(valid=False, reason=NOT_FOUND, expected=expected_hash)
        try:
            actual = await file_sha1(path)
        except FileNotFoundError:
            return VerifyResult(valid=False, reason=NOT_FOUND, expected=expected_hash)
        except OSError as e:
            return VerifyResult(valid=False, reason=IO_ERROR, expected=expected_hash, message=str(e))

        if actual.lower() != expected_hash.lower():
            return VerifyResult(valid=False, reason=HASH_MISMATCH, expected=expected_hash, actual=actual)
        return VerifyResult(valid=True, expected=expected_hash, actual=actual)

    async def load_index(self, index_id: str) -> AssetIndex:
        path = self.index_path(index_id)
        async with aiofiles.open(path, 'r', encoding='utf-8') as f:
            text = await f.read()
        try:
            index = AssetIndex.model_validate_json(text)
        except ValueError as e:
            raise MetadataUnavailable([str(path)], f"corrupt asset index: {e}")
        index.id = index_id
        return index

    async def _resolve_index(self, index: Union[str, AssetIndex]) -> AssetIndex:
        if isinstance(index, str):
            return await self.load_index(index)
        return index

    async def verify_index(self, index: Union[str, AssetIndex]) -> IndexVerification:
        """Verify every object an index lists against the object store."""
        index = await self._resolve_index(index)
        report = IndexVerification(index_id=index.id, total=len(index.objects))
        logger.info("Verifying %d assets from index %s", report.total, index.id)

        for done, (name, obj) in enumerate(index.objects.items(), start=1):
            result = await self.verify(self.object_path(obj.hash), obj.hash)
            if result.valid:
                report.valid += 1
            elif result.reason == NOT_FOUND:
                report.missing += 1
                report.missing_objects.append(AssetRef(name=name, hash=obj.hash))
            else:
                report.invalid += 1
                report.invalid_objects.append(AssetRef(name=name, hash=obj.hash))
            self._progress("verify_assets", done, report.total)

        logger.info("Asset verification for %s: %d valid, %d invalid, %d missing",
                    index.id, report.valid, report.invalid, report.missing)
        return report

    def _object_tasks(self, refs: Iterable[AssetRef]) -> List[DownloadTask]:
        tasks: Dict[str, DownloadTask] = {}
        for ref in refs:
            if ref.hash in tasks:
                continue
            tasks[ref.hash] = DownloadTask(
                url=self.object_url(ref.hash),
                destination=self.object_path(ref.hash),
                expected_hash=ref.hash,
                name=ref.name,
            )
        return list(tasks.values())

    def _require_engine(self) -> DownloadEngine:
        if self.engine is None:
            raise RuntimeError("AssetStore needs a DownloadEngine to fetch objects")
        return self.engine

    async def repair(self, objects: Iterable[AssetRef]) -> RepairResult:
        """Re-download damaged objects from the resource CDN and re-verify them.

        Objects that still fail are reported, not raised.
        """
        engine = self._require_engine()
        refs = list(objects)
        result = RepairResult()
        if not refs:
            return result

        logger.info("Found %d missing assets, attempting to repair...", len(refs))
        await engine.download_many(self._object_tasks(refs), phase="repair_assets")

        for ref in refs:
            if (await self.verify(self.object_path(ref.hash), ref.hash)).valid:
                result.repaired.append(ref)
            else:
                logger.warning("Failed to repair asset %s (%s)", ref.name, ref.hash)
                result.still_missing.append(ref)
        logger.info("Successfully repaired %d assets", len(result.repaired))
        return result

    async def fetch_objects(self, index: Union[str, AssetIndex]) -> BatchResult:
        """Download every object the index lists that is missing or corrupt."""
        engine = self._require_engine()
        index = await self._resolve_index(index)
        report = await self.verify_index(index)
        logger.info("Found %d existing assets and %d assets to download",
                    report.valid, len(report.damaged))

        tasks = self._object_tasks(report.damaged)
        if not tasks:
            return BatchResult()
        result = await engine.download_many(tasks, engine.concurrency_for(len(tasks)), phase="assets")
        return await engine.retry_failures(result)

    async def materialize_virtual(self, index: Union[str, AssetIndex]) -> int:
        """Copy objects into the flat legacy tree. Existing files are left alone."""
        index = await self._resolve_index(index)
        if not index.virtual:
            return 0

        ensure_dir(self.virtual_dir)
        logger.info("Creating virtual assets structure in %s", self.virtual_dir)
        loop = asyncio.get_running_loop()
        total = len(index.objects)
        copied = 0
        for done, (name, obj) in enumerate(index.objects.items(), start=1):
            destination = self.virtual_dir / name
            source = self.object_path(obj.hash)
            if not is_within(self.virtual_dir, destination):
                logger.warning("Skipping asset outside the virtual tree: %s", name)
            elif not destination.exists() and source.is_file():
                try:
                    await loop.run_in_executor(None, copy_atomic, source, destination)
                    copied += 1
                except OSError as e:
                    logger.error("Failed to create virtual asset %s: %s", name, e)
            self._progress("virtual_assets", done, total)

        logger.info("Created %d virtual assets", copied)
        return copied

    async def setup_sound_resources(self, index: Union[str, AssetIndex]) -> int:
        """Mirror sound objects into the legacy ``resources`` tree.

        Indexes flagged ``map_to_resources`` get every object mirrored.
        """
        index = await self._resolve_index(index)
        sounds_dir = ensure_dir(self.resources_dir / "sounds")
        properties = sounds_dir / "sound.properties"
        if not properties.exists():
            properties.write_text("sounds.enabled=true\n", encoding="utf-8")

        loop = asyncio.get_running_loop()
        copied = 0
        for name, obj in index.objects.items():
            if index.map_to_resources:
                relative = name
            elif name.startswith(SOUND_PREFIXES) and name.endswith(".ogg"):
                relative = name[len("minecraft/"):]
            else:
                continue
            destination = self.resources_dir / relative
            source = self.object_path(obj.hash)
            if not is_within(self.resources_dir, destination) or destination.exists() or not source.is_file():
                continue
            try:
                await loop.run_in_executor(None, copy_atomic, source, destination)
                copied += 1
            except OSError as e:
                logger.error("Failed to copy sound asset %s: %s", name, e)

        logger.info("Processed %d sound assets", copied)
        return copied
