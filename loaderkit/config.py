"""Launcher configuration."""

import os
import platform
from pathlib import Path
from typing import ClassVar, List

from pydantic import BaseModel, Field


def default_minecraft_dir() -> Path:
    """Platform default game directory."""
    system = platform.system()
    if system == "Windows":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata) / ".minecraft"
        return Path.home() / "AppData" / "Roaming" / ".minecraft"
    if system == "Darwin":
        return Path.home() / "Library" / "Application Support" / "minecraft"
    return Path.home() / ".minecraft"


class LauncherConfig(BaseModel):
    VERSION_MANIFEST_URL: ClassVar[str] = "https://launchermeta.mojang.com/mc/game/version_manifest.json"
    VERSION_MANIFEST_FALLBACK_URL: ClassVar[str] = "https://piston-meta.mojang.com/mc/game/version_manifest.json"
    LOADER_META_URL: ClassVar[str] = "https://meta.fabricmc.net/v2/versions"
    LOADER_META_FALLBACK_URL: ClassVar[str] = "https://fabricmc.net/meta/v2/versions"
    RESOURCES_URL: ClassVar[str] = "https://resources.download.minecraft.net"

    minecraft_dir: Path = Field(default_factory=default_minecraft_dir)
    log_dir: Path = Field(default_factory=lambda: Path.home() / ".cache" / "loaderkit")

    version_manifest_urls: List[str] = Field(
        default_factory=lambda: [
            LauncherConfig.VERSION_MANIFEST_URL,
            LauncherConfig.VERSION_MANIFEST_FALLBACK_URL,
        ]
    )
    loader_meta_urls: List[str] = Field(
        default_factory=lambda: [
            LauncherConfig.LOADER_META_URL,
            LauncherConfig.LOADER_META_FALLBACK_URL,
        ]
    )
    resources_url: str = RESOURCES_URL
    maven_repositories: List[str] = Field(
        default_factory=lambda: [
            "https://libraries.minecraft.net/",
            "https://repo1.maven.org/maven2/",
            "https://maven.fabricmc.net/",
        ]
    )
    overlay_id_template: str = "fabric-loader-{loader}-{base}"

    metadata_timeout: float = 15.0
    download_timeout: float = 30.0
    retries: int = 3
    retry_delay: float = 1.0
    min_concurrency: int = 10
    max_concurrency: int = 50
    progress_batch: int = 500

    launcher_name: str = "LoaderKit"
    launcher_version: str = "1.0.0"
    ram_min: str = "1G"
    ram_max: str = "2G"

    @property
    def versions_dir(self) -> Path:
        return self.minecraft_dir / "versions"

    @property
    def libraries_dir(self) -> Path:
        return self.minecraft_dir / "libraries"

    @property
    def assets_dir(self) -> Path:
        return self.minecraft_dir / "assets"

    @property
    def resources_dir(self) -> Path:
        return self.minecraft_dir / "resources"

    def overlay_id(self, base_version: str, loader_version: str) -> str:
        return self.overlay_id_template.format(loader=loader_version, base=base_version)

    def directories(self) -> List[Path]:
        """Directories that must exist before an acquisition run."""
        return [
            self.minecraft_dir,
            self.versions_dir,
            self.libraries_dir,
            self.assets_dir,
            self.assets_dir / "indexes",
            self.assets_dir / "objects",
        ]
