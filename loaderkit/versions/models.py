"""Data models for version descriptors, libraries and asset indexes."""

from datetime import datetime
from typing import Dict, List, NamedTuple, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Coordinate(NamedTuple):
    """``group:artifact:version[:classifier]`` library identifier."""

    group: str
    artifact: str
    version: str
    classifier: Optional[str] = None

    @classmethod
    def parse(cls, name: Optional[str]) -> Optional["Coordinate"]:
        """Parse a coordinate; anything with fewer than three segments is rejected."""
        if not name:
            return None
        parts = name.split(":")
        if len(parts) < 3 or not all(parts[:3]):
            return None
        classifier = parts[3] if len(parts) > 3 and parts[3] else None
        return cls(parts[0], parts[1], parts[2], classifier)

    @property
    def key(self) -> str:
        """Conflict identity, version excluded."""
        return f"{self.group}:{self.artifact}"

    def relative_path(self, classifier: Optional[str] = None) -> str:
        classifier = classifier or self.classifier
        jar_name = f"{self.artifact}-{self.version}"
        if classifier:
            jar_name += f"-{classifier}"
        return f"{self.group.replace('.', '/')}/{self.artifact}/{self.version}/{jar_name}.jar"

    def __str__(self) -> str:
        name = f"{self.group}:{self.artifact}:{self.version}"
        if self.classifier:
            name += f":{self.classifier}"
        return name


class ArtifactRef(BaseModel):
    path: Optional[str] = None
    sha1: Optional[str] = None
    size: Optional[Union[int, str]] = None
    url: Optional[str] = None


class LibraryDownloads(BaseModel):
    artifact: Optional[ArtifactRef] = None
    classifiers: Optional[Dict[str, ArtifactRef]] = None


class LibraryExtractor(BaseModel):
    exclude: Optional[List[str]] = None


class RuleOs(BaseModel):
    name: Optional[str] = None
    version: Optional[str] = None
    arch: Optional[str] = None


class Rule(BaseModel):
    action: str = "allow"
    os: Optional[RuleOs] = None
    features: Optional[Dict[str, bool]] = None


class Library(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    downloads: Optional[LibraryDownloads] = None
    rules: Optional[List[Rule]] = None
    extract: Optional[LibraryExtractor] = None
    natives: Optional[Dict[str, str]] = None
    url: Optional[str] = None
    sha1: Optional[str] = None
    size: Optional[int] = None

    @property
    def coordinate(self) -> Optional[Coordinate]:
        return Coordinate.parse(self.name)

    @property
    def artifact(self) -> Optional[ArtifactRef]:
        if self.downloads:
            return self.downloads.artifact
        return None


class ConditionalArgument(BaseModel):
    rules: List[Rule] = Field(default_factory=list)
    value: Union[str, List[str]]

    @property
    def values(self) -> List[str]:
        if isinstance(self.value, str):
            return [self.value]
        return list(self.value)


Argument = Union[str, ConditionalArgument]


class VersionArguments(BaseModel):
    game: List[Argument] = Field(default_factory=list)
    jvm: List[Argument] = Field(default_factory=list)


class AssetIndexRef(BaseModel):
    id: str
    sha1: Optional[str] = None
    size: Optional[int] = None
    totalSize: Optional[int] = None
    url: Optional[str] = None


class AssetObject(BaseModel):
    hash: str
    size: Optional[int] = None


class AssetIndex(BaseModel):
    id: Optional[str] = Field(default=None, exclude=True)
    virtual: bool = False
    map_to_resources: bool = False
    objects: Dict[str, AssetObject] = Field(default_factory=dict)


class VersionInfo(BaseModel):
    id: str
    type: str
    url: str
    time: datetime
    releaseTime: datetime
    sha1: Optional[str] = None
    complianceLevel: int = 0


class VersionManifest(BaseModel):
    latest: Dict[str, str]
    versions: List[VersionInfo]

    def get(self, version_id: str) -> Optional[VersionInfo]:
        for version in self.versions:
            if version.id == version_id:
                return version
        return None


class VersionDescriptor(BaseModel):
    """Parsed version.json data - flexible for base and overlay documents"""

    model_config = ConfigDict(extra="allow")

    id: str
    inheritsFrom: Optional[str] = None
    type: Optional[str] = None
    time: Optional[str] = None
    releaseTime: Optional[str] = None
    downloads: Optional[Dict[str, ArtifactRef]] = None
    assetIndex: Optional[AssetIndexRef] = None
    assets: Optional[str] = None
    arguments: Optional[VersionArguments] = None
    minecraftArguments: Optional[str] = None
    libraries: List[Library] = Field(default_factory=list)
    mainClass: Optional[str] = None
    jar: Optional[str] = None

    @property
    def client(self) -> Optional[ArtifactRef]:
        if self.downloads:
            return self.downloads.get("client")
        return None

    @property
    def asset_index_id(self) -> str:
        if self.assetIndex:
            return self.assetIndex.id
        return self.assets or "legacy"

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)

    def merge_parent(self, parent: "VersionDescriptor") -> "VersionDescriptor":
        """Child-over-parent merge used for ``inheritsFrom`` chains.

        Libraries keep the child's entries first; argument lists are
        concatenated parent then child; scalar fields fall back to the parent.
        """
        merged = parent.model_copy(deep=True)
        merged.id = self.id
        merged.inheritsFrom = parent.inheritsFrom
        merged.jar = parent.jar or parent.id
        merged.libraries = [lib.model_copy(deep=True) for lib in self.libraries] + merged.libraries

        for field in ("type", "time", "releaseTime", "assetIndex", "assets",
                      "minecraftArguments", "mainClass"):
            value = getattr(self, field)
            if value is not None:
                setattr(merged, field, value)

        if self.downloads:
            merged.downloads = {**(merged.downloads or {}), **self.downloads}

        if self.arguments:
            base_args = merged.arguments or VersionArguments()
            merged.arguments = VersionArguments(
                game=base_args.game + self.arguments.game,
                jvm=base_args.jvm + self.arguments.jvm,
            )
        return merged
