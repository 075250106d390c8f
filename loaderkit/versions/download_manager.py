"""Download manager for version jars, libraries and asset indexes."""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import aiofiles

from ..config import LauncherConfig
from ..downloads import BatchResult, DownloadContext, DownloadEngine, DownloadTask
from ..errors import MetadataUnavailable
from ..utils.progress import ProgressNotifier
from .models import AssetIndex, Library, VersionDescriptor
from .rules import RuleEvaluator

logger = logging.getLogger(__name__)


class DownloadManager:
    """Turns descriptors into download tasks for the engine.

    Library artifacts already fetched during this run are tracked in the
    shared :class:`DownloadContext`, so the base and overlay graphs never
    queue the same file twice.
    """

    def __init__(self, engine: DownloadEngine, config: Optional[LauncherConfig] = None,
                 context: Optional[DownloadContext] = None,
                 evaluator: Optional[RuleEvaluator] = None,
                 notifier: Optional[ProgressNotifier] = None):
        self.engine = engine
        self.config = config or LauncherConfig()
        self.context = context if context is not None else DownloadContext()
        self.evaluator = evaluator or RuleEvaluator()
        self.notifier = notifier or engine.notifier

    def version_jar_path(self, version_id: str) -> Path:
        return self.config.versions_dir / version_id / f"{version_id}.jar"

    async def download_version_jar(self, descriptor: VersionDescriptor) -> Optional[Path]:
        """Download the client jar. Returns None when the descriptor has none."""
        client = descriptor.client
        if client is None or not client.url:
            logger.warning("No client download listed for %s", descriptor.id)
            return None

        task = DownloadTask(url=client.url, destination=self.version_jar_path(descriptor.id),
                            expected_hash=client.sha1, retries=self.config.retries,
                            name=f"{descriptor.id}.jar")
        logger.info("Downloading client jar for %s", descriptor.id)
        path = await self.engine.download_task(task)
        self.notifier.emit("client", 1, 1, task.label)
        return path

    def _maven_urls(self, library: Library, relative_path: str) -> List[str]:
        roots = []
        if library.url:
            roots.append(library.url)
        roots.extend(self.config.maven_repositories)

        urls = []
        for root in roots:
            url = f"{root.rstrip('/')}/{relative_path}"
            if url not in urls:
                urls.append(url)
        return urls

    def library_tasks(self, libraries: Iterable[Library]) -> List[DownloadTask]:
        """Download tasks for every applicable library not yet satisfied."""
        tasks: Dict[str, DownloadTask] = {}

        def add(relative_path: str, urls: List[str], sha1: Optional[str]):
            if relative_path in self.context or relative_path in tasks:
                return
            destination = self.config.libraries_dir / relative_path
            if not sha1 and destination.is_file() and destination.stat().st_size > 0:
                # nothing to verify against; keep what is there
                self.context.add(relative_path)
                return
            tasks[relative_path] = DownloadTask(url=urls[0], mirrors=urls[1:], destination=destination,
                                                expected_hash=sha1, retries=self.config.retries,
                                                name=relative_path)

        for lib in self.evaluator.filter_libraries(libraries):
            artifact = lib.artifact
            if artifact and artifact.url and artifact.path:
                add(artifact.path, [artifact.url], artifact.sha1)
            elif lib.downloads is None:
                coordinate = lib.coordinate
                if coordinate is None:
                    logger.warning("Skipping library with unparsable name: %s", lib.name)
                    continue
                relative_path = coordinate.relative_path()
                add(relative_path, self._maven_urls(lib, relative_path), lib.sha1)

            classifier = self.evaluator.native_classifier(lib)
            if classifier and lib.downloads and lib.downloads.classifiers:
                native = lib.downloads.classifiers.get(classifier)
                if native and native.url and native.path:
                    add(native.path, [native.url], native.sha1)
                else:
                    logger.warning("Native %s for %s not listed in classifiers", classifier, lib.name)

        return list(tasks.values())

    async def download_libraries(self, libraries: Iterable[Library], phase: str = "libraries") -> BatchResult:
        """Download all applicable libraries with one sequential retry pass."""
        tasks = self.library_tasks(libraries)
        if not tasks:
            logger.info("All libraries already satisfied")
            return BatchResult()

        logger.info("Downloading %d libraries", len(tasks))
        result = await self.engine.download_many(tasks, self.engine.concurrency_for(len(tasks)), phase=phase)
        result = await self.engine.retry_failures(result)
        for task in result.succeeded:
            self.context.add(task.name)
        return result

    def asset_index_path(self, index_id: str) -> Path:
        return self.config.assets_dir / "indexes" / f"{index_id}.json"

    async def download_asset_index(self, descriptor: VersionDescriptor) -> AssetIndex:
        """Download (or reuse) the asset index and parse it.

        Descriptors without an asset index get an empty one.
        """
        index_id = descriptor.asset_index_id
        path = self.asset_index_path(index_id)
        ref = descriptor.assetIndex
        if ref and ref.url:
            await self.engine.download_one(ref.url, path, ref.sha1, self.config.retries)
        elif not path.is_file():
            logger.warning("No asset index available for %s", descriptor.id)
            return AssetIndex(id=index_id)

        async with aiofiles.open(path, 'r', encoding='utf-8') as f:
            text = await f.read()
        try:
            index = AssetIndex.model_validate_json(text)
        except ValueError as e:
            raise MetadataUnavailable([str(path)], f"corrupt asset index: {e}")
        index.id = index_id
        logger.info("Loaded asset index %s with %d objects", index_id, len(index.objects))
        return index
