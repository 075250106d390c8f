"""Mod loader (overlay) metadata manager."""

import logging
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, TypeAdapter

from ..config import LauncherConfig
from ..downloads import DownloadEngine, DownloadTask
from ..errors import DownloadError, VersionNotFound
from ..utils.async_http import AsyncHTTPClient
from ..utils.fs import copy_atomic
from ..versions.models import Coordinate, VersionDescriptor

logger = logging.getLogger(__name__)


class LoaderInfo(BaseModel):
    version: str
    stable: Optional[bool] = None


class LoaderEntry(BaseModel):
    loader: LoaderInfo


LOADER_LIST = TypeAdapter(List[LoaderEntry])


def parse_loader_versions(body: bytes) -> List[str]:
    """Loader versions from a loader list document; raises ValueError on a malformed one."""
    return [entry.loader.version for entry in LOADER_LIST.validate_json(body)]


def checked_descriptor(body: bytes) -> bytes:
    VersionDescriptor.model_validate_json(body)
    return body


class ModLoaderManager:
    LOADER_GROUP = "net.fabricmc"
    LOADER_ARTIFACT = "fabric-loader"
    LOADER_REPOSITORIES = [
        "https://maven.fabricmc.net/",
        "https://repo1.maven.org/maven2/",
        "https://libraries.minecraft.net/",
    ]

    def __init__(self, config: LauncherConfig, http: AsyncHTTPClient):
        self.config = config
        self.http = http

    def meta_urls(self, path: str) -> List[str]:
        """Ranked endpoint list for a loader metadata path."""
        return [f"{root.rstrip('/')}/{path}" for root in self.config.loader_meta_urls]

    async def get_loader_versions(self, base_version: str) -> List[str]:
        """Loader versions published for a base version, newest first."""
        return await self.http.get_with_fallback(self.meta_urls(f"loader/{base_version}"),
                                                 parse_loader_versions)

    async def get_latest_loader_version(self, base_version: str) -> str:
        versions = await self.get_loader_versions(base_version)
        if not versions:
            raise VersionNotFound(base_version, "loader metadata")
        return versions[0]

    async def ensure_loader_version(self, base_version: str, loader_version: str) -> None:
        versions = await self.get_loader_versions(base_version)
        if loader_version not in versions:
            raise VersionNotFound(loader_version, f"loader versions for {base_version}")

    async def fetch_profile(self, base_version: str, loader_version: str) -> bytes:
        """Raw overlay descriptor document."""
        return await self.http.get_with_fallback(
            self.meta_urls(f"loader/{base_version}/{loader_version}/profile/json"), checked_descriptor
        )

    def loader_coordinate(self, loader_version: str) -> Coordinate:
        return Coordinate(self.LOADER_GROUP, self.LOADER_ARTIFACT, loader_version)

    def loader_jar_target(self, base_version: str, loader_version: str) -> Path:
        overlay_id = self.config.overlay_id(base_version, loader_version)
        return self.config.versions_dir / overlay_id / f"{overlay_id}.jar"

    async def transfer_loader_jar(self, base_version: str, loader_version: str,
                                  engine: DownloadEngine) -> Optional[Path]:
        """Place the loader jar next to the overlay descriptor.

        Copies it from the library tree when present, otherwise downloads it
        straight into the versions directory.
        """
        target = self.loader_jar_target(base_version, loader_version)
        if target.exists():
            logger.info("Loader jar already exists in versions directory: %s", target)
            return target

        coordinate = self.loader_coordinate(loader_version)
        source = self.config.libraries_dir / coordinate.relative_path()
        if source.is_file():
            copy_atomic(source, target)
            logger.info("Transferred loader jar from %s to %s", source, target)
            return target

        logger.info("Loader jar not found at %s, downloading directly", source)
        urls = [f"{repo}{coordinate.relative_path()}" for repo in self.LOADER_REPOSITORIES]
        task = DownloadTask(url=urls[0], mirrors=urls[1:], destination=target,
                            retries=self.config.retries, name=str(coordinate))
        try:
            return await engine.download_task(task)
        except DownloadError as e:
            logger.error("Failed to download loader jar from all repositories: %s", e)
            return None
