"""Version manifest and descriptor manager."""

import hashlib
import logging
from pathlib import Path
from typing import List, Optional, Set, Tuple

from pydantic import ValidationError

from ..config import LauncherConfig
from ..errors import MetadataUnavailable, VersionNotFound
from ..modloaders.modloader_manager import ModLoaderManager
from ..utils.async_http import AsyncHTTPClient
from ..utils.fs import write_atomic
from .conflicts import Conflict, reconcile
from .models import VersionDescriptor, VersionInfo, VersionManifest

logger = logging.getLogger(__name__)


class VersionManager:
    """Fetches, caches and parses base and overlay version descriptors.

    Descriptors are cached verbatim at ``versions/<id>/<id>.json``; a cached
    document is always preferred over the network.
    """

    def __init__(self, config: Optional[LauncherConfig] = None, http: Optional[AsyncHTTPClient] = None):
        self.config = config or LauncherConfig()
        self._owns_http = http is None
        self.http = http or AsyncHTTPClient(timeout=self.config.metadata_timeout,
                                            retries=self.config.retries,
                                            retry_delay=self.config.retry_delay)
        self.loaders = ModLoaderManager(self.config, self.http)
        self._manifest: Optional[VersionManifest] = None

    async def __aenter__(self):
        if self._owns_http:
            await self.http.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if self._owns_http:
            await self.http.close()

    def descriptor_path(self, version_id: str) -> Path:
        return self.config.versions_dir / version_id / f"{version_id}.json"

    def load_cached(self, version_id: str) -> Optional[VersionDescriptor]:
        path = self.descriptor_path(version_id)
        if not path.is_file():
            return None
        logger.info("Using cached %s descriptor", version_id)
        try:
            return VersionDescriptor.model_validate_json(path.read_bytes())
        except ValueError as e:
            raise MetadataUnavailable([str(path)], f"corrupt cached descriptor: {e}")

    def _store(self, version_id: str, body: bytes) -> VersionDescriptor:
        try:
            descriptor = VersionDescriptor.model_validate_json(body)
        except ValidationError as e:
            raise MetadataUnavailable([version_id], f"invalid descriptor document: {e}")
        write_atomic(self.descriptor_path(version_id), body)
        return descriptor

    async def fetch_manifest(self) -> VersionManifest:
        """Fetch the base version catalog (once per manager)."""
        if self._manifest is None:
            self._manifest = await self.http.get_with_fallback(self.config.version_manifest_urls,
                                                               VersionManifest.model_validate_json)
        return self._manifest

    async def get_version_info(self, version_id: str, manifest: Optional[VersionManifest] = None) -> Optional[VersionInfo]:
        """Get version info for a specific version."""
        manifest = manifest or await self.fetch_manifest()
        return manifest.get(version_id)

    async def latest_release(self) -> str:
        manifest = await self.fetch_manifest()
        return manifest.latest["release"]

    async def resolve_base(self, version_id: str) -> VersionDescriptor:
        """Base descriptor for ``version_id``, from cache or the version catalog."""
        cached = self.load_cached(version_id)
        if cached is not None:
            return cached

        logger.info("Downloading %s descriptor", version_id)
        info = await self.get_version_info(version_id)
        if info is None:
            raise VersionNotFound(version_id)

        body = await self.http.get_with_fallback([info.url])
        if info.sha1 and hashlib.sha1(body).hexdigest() != info.sha1.lower():
            raise MetadataUnavailable([info.url], "descriptor hash does not match the catalog")
        return self._store(version_id, body)

    async def resolve_overlay(self, base_version_id: str, overlay_version: str) -> VersionDescriptor:
        """Overlay (loader) descriptor for a base version, from cache or loader metadata."""
        overlay_id = self.config.overlay_id(base_version_id, overlay_version)
        cached = self.load_cached(overlay_id)
        if cached is not None:
            return cached

        logger.info("Downloading %s descriptor", overlay_id)
        await self.loaders.ensure_loader_version(base_version_id, overlay_version)
        body = await self.loaders.fetch_profile(base_version_id, overlay_version)
        return self._store(overlay_id, body)

    @staticmethod
    def _next_parent(descriptor: VersionDescriptor, seen: Set[str]) -> Optional[str]:
        parent_id = descriptor.inheritsFrom
        if parent_id is None:
            return None
        if parent_id in seen:
            raise MetadataUnavailable([parent_id], f"inheritance cycle through {parent_id}")
        seen.add(parent_id)
        return parent_id

    async def resolve(self, version_id: str) -> VersionDescriptor:
        """Descriptor with its whole ``inheritsFrom`` chain merged in."""
        descriptor = await self.resolve_base(version_id)
        seen = {descriptor.id}
        while (parent_id := self._next_parent(descriptor, seen)) is not None:
            descriptor = descriptor.merge_parent(await self.resolve_base(parent_id))
        return descriptor

    def load_launch_descriptor(self, base_version_id: str, overlay_version: str) -> Tuple[VersionDescriptor, List[Conflict]]:
        """Reconciled, merged descriptor from the local cache only.

        Ancestors of the base version are merged into it before the overlay
        is reconciled against the result.
        """
        overlay_id = self.config.overlay_id(base_version_id, overlay_version)
        base = self.load_cached(base_version_id)
        if base is None:
            raise VersionNotFound(base_version_id, "local cache")
        overlay = self.load_cached(overlay_id)
        if overlay is None:
            raise VersionNotFound(overlay_id, "local cache")

        seen = {overlay_id, base_version_id}
        while (parent_id := self._next_parent(base, seen)) is not None:
            parent = self.load_cached(parent_id)
            if parent is None:
                raise VersionNotFound(parent_id, "local cache")
            base = base.merge_parent(parent)

        outcome = reconcile(base, overlay)
        return outcome.overlay.merge_parent(outcome.base), outcome.conflicts
