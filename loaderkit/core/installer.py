"""End-to-end installation of a base version plus its mod loader."""

import logging
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field

from ..assets import AssetStore
from ..config import LauncherConfig
from ..downloads import DownloadContext, DownloadEngine, FailedDownload
from ..errors import DownloadError, LauncherError, MetadataUnavailable
from ..utils.fs import ensure_dir
from ..utils.progress import ProgressNotifier
from ..versions.conflicts import Conflict, DescriptorPatcher
from ..versions.download_manager import DownloadManager
from ..versions.manager import VersionManager
from ..versions.models import AssetIndex, VersionDescriptor
from ..versions.rules import RuleEvaluator
from .classpath import ClasspathComposer
from .enumerator import ArtifactEnumerator

logger = logging.getLogger(__name__)


class MissingAsset(BaseModel):
    name: str
    hash: str


class MissingLibrary(BaseModel):
    name: str
    path: Path


class IntegrityReport(BaseModel):
    version: str
    client_jar: Path
    client_exists: bool
    total_libraries: int
    missing_libraries: List[MissingLibrary] = Field(default_factory=list)

    @property
    def complete(self) -> bool:
        return self.client_exists and not self.missing_libraries


class InstallResult(BaseModel):
    base_version: str
    loader_version: Optional[str] = None
    overlay_id: Optional[str] = None
    success: bool = False
    error: Optional[str] = None
    conflicts: List[Conflict] = Field(default_factory=list)
    failed_downloads: List[FailedDownload] = Field(default_factory=list)
    missing_assets: List[MissingAsset] = Field(default_factory=list)
    missing_libraries: List[MissingLibrary] = Field(default_factory=list)
    client_jar: Optional[Path] = None
    loader_jar: Optional[Path] = None
    main_class: Optional[str] = None
    main_class_jar: Optional[Path] = None
    restore_error: Optional[str] = None
    descriptor: Optional[VersionDescriptor] = None


class GameInstaller:
    """Acquires everything a base+loader pair needs to launch.

    Per-artifact failures are collected on the result; only catalog
    resolution and directory setup abort the run.
    """

    def __init__(self, config: Optional[LauncherConfig] = None,
                 notifier: Optional[ProgressNotifier] = None,
                 evaluator: Optional[RuleEvaluator] = None):
        self.config = config or LauncherConfig()
        self.notifier = notifier or ProgressNotifier()
        self.evaluator = evaluator or RuleEvaluator()

    async def install(self, base_version: str, loader_version: Optional[str] = None) -> InstallResult:
        result = InstallResult(base_version=base_version, loader_version=loader_version)
        try:
            for directory in self.config.directories():
                ensure_dir(directory)
            async with VersionManager(self.config) as versions, \
                    DownloadEngine.from_config(self.config, self.notifier) as engine:
                await self._install(versions, engine, result)
        except LauncherError as e:
            logger.error("Installation of %s failed: %s", base_version, e)
            result.error = str(e)
        except OSError as e:
            logger.error("Cannot prepare game directory %s: %s", self.config.minecraft_dir, e)
            result.error = f"Cannot prepare game directory: {e}"
        return result

    async def _install(self, versions: VersionManager, engine: DownloadEngine, result: InstallResult) -> None:
        base_version = result.base_version
        if result.loader_version is None:
            result.loader_version = await versions.loaders.get_latest_loader_version(base_version)
            logger.info("Using latest loader version %s", result.loader_version)
        loader_version = result.loader_version
        result.overlay_id = self.config.overlay_id(base_version, loader_version)

        self.notifier.emit("metadata", 0, 2)
        await versions.resolve_base(base_version)
        await versions.resolve_overlay(base_version, loader_version)
        self.notifier.emit("metadata", 2, 2)

        downloads = DownloadManager(engine, self.config, DownloadContext(), self.evaluator, self.notifier)
        patcher = DescriptorPatcher()
        with patcher.patched(versions.descriptor_path(base_version),
                             versions.descriptor_path(result.overlay_id)) as outcome:
            result.conflicts = outcome.conflicts
            await self._acquire(downloads, engine, outcome.base, outcome.overlay, result)
            result.loader_jar = await versions.loaders.transfer_loader_jar(base_version, loader_version, engine)
        result.restore_error = outcome.restore_error

        descriptor, _ = versions.load_launch_descriptor(base_version, loader_version)
        result.descriptor = descriptor
        result.main_class = descriptor.mainClass
        self._locate_main_class(descriptor, result)
        result.missing_libraries = self.verify_version_integrity(descriptor).missing_libraries

        result.success = bool(result.client_jar and result.client_jar.is_file() and result.main_class_jar)
        if not result.success and result.error is None:
            result.error = "Client jar or main class library is missing"
        logger.info("Installation of %s finished: success=%s, %d failed downloads, %d missing assets",
                    result.overlay_id, result.success, len(result.failed_downloads), len(result.missing_assets))

    async def _acquire(self, downloads: DownloadManager, engine: DownloadEngine,
                       base: VersionDescriptor, overlay: VersionDescriptor, result: InstallResult) -> None:
        try:
            result.client_jar = await downloads.download_version_jar(base)
        except DownloadError as e:
            logger.error("Failed to download client jar for %s: %s", base.id, e)
            result.error = str(e)

        for descriptor, phase in ((base, "libraries"), (overlay, "loader_libraries")):
            batch = await downloads.download_libraries(descriptor.libraries, phase=phase)
            result.failed_downloads.extend(batch.failed)

        try:
            index = await downloads.download_asset_index(base)
        except (DownloadError, MetadataUnavailable) as e:
            logger.error("Failed to download asset index for %s: %s", base.id, e)
            index = AssetIndex(id=base.asset_index_id)

        store = AssetStore.from_config(self.config, engine, self.notifier)
        batch = await store.fetch_objects(index)
        result.failed_downloads.extend(batch.failed)
        verification = await store.verify_index(index)
        if verification.damaged:
            repaired = await store.repair(verification.damaged)
            result.missing_assets = [MissingAsset(name=ref.name, hash=ref.hash) for ref in repaired.still_missing]
        await store.materialize_virtual(index)
        await store.setup_sound_resources(index)

    def verify_version_integrity(self, descriptor: VersionDescriptor) -> IntegrityReport:
        """Check the client jar and every library the merged descriptor needs on this platform."""
        composer = ClasspathComposer(self.config.libraries_dir, self.config.versions_dir, evaluator=self.evaluator)
        client_jar = composer.client_jar_path(descriptor)
        report = IntegrityReport(
            version=descriptor.id,
            client_jar=client_jar,
            client_exists=client_jar.is_file(),
            total_libraries=len(self.evaluator.filter_libraries(descriptor.libraries)),
            missing_libraries=[MissingLibrary(name=lib.name, path=path)
                               for lib, path in composer.missing_artifacts(descriptor)],
        )
        if not report.complete:
            logger.warning("Version %s is incomplete: client jar %s, %d missing libraries", descriptor.id,
                           "present" if report.client_exists else "missing", len(report.missing_libraries))
        return report

    def _locate_main_class(self, descriptor: VersionDescriptor, result: InstallResult) -> None:
        if not descriptor.mainClass:
            return
        composer = ClasspathComposer(self.config.libraries_dir, self.config.versions_dir,
                                     evaluator=self.evaluator, enumerator=ArtifactEnumerator())
        jars = composer.build_classpath(descriptor)
        result.main_class_jar = composer.enumerator.find_class(descriptor.mainClass, jars)
        if result.main_class_jar is None:
            logger.warning("Main class %s not found in any library jar", descriptor.mainClass)
