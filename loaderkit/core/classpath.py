"""Classpath composition and native library extraction."""

import fnmatch
import logging
import os
import shutil
import zipfile
import zlib
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Optional, Tuple

from pydantic import BaseModel, Field

from ..utils.fs import ensure_dir, remove_quietly, temp_sibling
from ..versions.models import Library, VersionDescriptor
from ..versions.rules import RuleEvaluator
from .enumerator import ArtifactEnumerator

logger = logging.getLogger(__name__)


class ClasspathStrategy:
    """Chooses which library jars go on the classpath."""

    def library_jars(self, composer: "ClasspathComposer", descriptor: VersionDescriptor) -> List[Path]:
        raise NotImplementedError


class SelectiveStrategy(ClasspathStrategy):
    """Only the rule-allowed libraries of the reconciled descriptor graph."""

    def library_jars(self, composer: "ClasspathComposer", descriptor: VersionDescriptor) -> List[Path]:
        jars = []
        for lib in composer.evaluator.filter_libraries(descriptor.libraries):
            path = composer.library_path(lib)
            if path is None:
                continue
            if path.is_file():
                jars.append(path)
            else:
                logger.debug("Library jar missing, left off the classpath: %s", path)
        return jars


class ComprehensiveStrategy(ClasspathStrategy):
    """Every jar found under the library root."""

    def library_jars(self, composer: "ClasspathComposer", descriptor: VersionDescriptor) -> List[Path]:
        return list(composer.enumerator.iter_jars(composer.libraries_dir))


class NativeExtraction(BaseModel):
    directory: Path
    extracted: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    failed_archives: List[str] = Field(default_factory=list)


class ClasspathComposer:
    def __init__(self, libraries_dir: Path, versions_dir: Path,
                 strategy: Optional[ClasspathStrategy] = None,
                 evaluator: Optional[RuleEvaluator] = None,
                 enumerator: Optional[ArtifactEnumerator] = None):
        self.libraries_dir = Path(libraries_dir)
        self.versions_dir = Path(versions_dir)
        self.strategy = strategy or SelectiveStrategy()
        self.evaluator = evaluator or RuleEvaluator()
        self.enumerator = enumerator or ArtifactEnumerator()

    def library_path(self, library: Library) -> Optional[Path]:
        """Local jar for a library; None when its name cannot be parsed."""
        artifact = library.artifact
        if artifact and artifact.path:
            return self.libraries_dir / artifact.path
        coordinate = library.coordinate
        if coordinate is None:
            return None
        return self.libraries_dir / coordinate.relative_path()

    def client_jar_path(self, descriptor: VersionDescriptor) -> Path:
        """Client jar of the root of the inheritance chain."""
        version_id = descriptor.jar or descriptor.inheritsFrom or descriptor.id
        return self.versions_dir / version_id / f"{version_id}.jar"

    def build_classpath(self, descriptor: VersionDescriptor) -> List[Path]:
        """Ordered, de-duplicated classpath with the client jar last."""
        entries: List[Path] = []
        seen = set()

        def add(path: Path):
            key = os.path.normcase(str(path.absolute()))
            if key not in seen:
                seen.add(key)
                entries.append(path)

        for jar in self.strategy.library_jars(self, descriptor):
            add(jar)

        client_jar = self.client_jar_path(descriptor)
        if client_jar.is_file():
            add(client_jar)
        else:
            logger.warning("Client JAR %s does not exist", client_jar)

        logger.info("Classpath has %d entries", len(entries))
        return entries

    @staticmethod
    def join(classpath: Iterable[Path]) -> str:
        return os.pathsep.join(str(p) for p in classpath)

    def native_archive(self, library: Library) -> Optional[Path]:
        """Native archive for the current platform, if the library has one."""
        classifier = self.evaluator.native_classifier(library)
        if not classifier or not library.downloads or not library.downloads.classifiers:
            return None
        native = library.downloads.classifiers.get(classifier)
        if native and native.path:
            return self.libraries_dir / native.path
        coordinate = library.coordinate
        if coordinate is None:
            return None
        return self.libraries_dir / coordinate.relative_path(classifier)

    def missing_artifacts(self, descriptor: VersionDescriptor) -> List[Tuple[Library, Path]]:
        """Rule-allowed libraries whose jar or native archive is not on disk.

        Libraries with unparsable names are ignored.
        """
        missing = []
        for lib in self.evaluator.filter_libraries(descriptor.libraries):
            expected = []
            if lib.artifact or not (lib.downloads and lib.downloads.classifiers):
                expected.append(self.library_path(lib))
            expected.append(self.native_archive(lib))
            missing.extend((lib, path) for path in expected if path is not None and not path.is_file())
        return missing

    @staticmethod
    def _excluded(name: str, library: Library) -> bool:
        if name.startswith("META-INF/"):
            return True
        if library.extract and library.extract.exclude:
            return any(fnmatch.fnmatch(name, pattern + "*") for pattern in library.extract.exclude)
        return False

    def extract_natives(self, descriptor: VersionDescriptor, target_dir: Path) -> NativeExtraction:
        """Extract native archives flat into ``target_dir``.

        The directory is emptied first. Entries that cannot be written are
        skipped and counted; unreadable archives are recorded and skipped.
        """
        target_dir = ensure_dir(target_dir)
        for existing in target_dir.iterdir():
            try:
                if existing.is_dir():
                    shutil.rmtree(existing)
                else:
                    existing.unlink()
            except OSError as e:
                logger.warning("Could not delete %s in natives directory: %s", existing.name, e)

        result = NativeExtraction(directory=target_dir)
        for lib in self.evaluator.filter_libraries(descriptor.libraries):
            archive_path = self.native_archive(lib)
            if archive_path is None or not archive_path.is_file():
                continue
            try:
                with zipfile.ZipFile(archive_path) as archive:
                    for info in archive.infolist():
                        if info.is_dir() or self._excluded(info.filename, lib):
                            continue
                        name = PurePosixPath(info.filename).name
                        destination = target_dir / name
                        tmp = temp_sibling(destination)
                        try:
                            with archive.open(info) as src, open(tmp, "wb") as dst:
                                shutil.copyfileobj(src, dst)
                            os.replace(tmp, destination)
                            result.extracted.append(name)
                        except (OSError, zipfile.BadZipFile, zlib.error) as e:
                            logger.warning("Failed to extract %s from %s: %s", info.filename, archive_path.name, e)
                            result.skipped.append(info.filename)
                        finally:
                            remove_quietly(tmp)
            except (OSError, zipfile.BadZipFile, zlib.error) as e:
                logger.error("Failed to extract natives from %s: %s", archive_path, e)
                result.failed_archives.append(str(archive_path))

        if result.skipped:
            logger.warning("Skipped %d native entries", len(result.skipped))
        logger.info("Extracted %d native files into %s", len(result.extracted), target_dir)
        return result
