"""Jar discovery shared by the classpath composer and the installer."""

import fnmatch
import logging
import zipfile
from pathlib import Path
from typing import Iterable, Iterator, Optional

logger = logging.getLogger(__name__)


class ArtifactEnumerator:
    """Walks a library tree for jar files."""

    def iter_jars(self, root: Path, pattern: Optional[str] = None) -> Iterator[Path]:
        """Yield jars under ``root`` in a stable order.

        ``pattern`` is a glob matched against the file name.
        """
        root = Path(root)
        if not root.is_dir():
            return
        for path in sorted(root.rglob("*.jar")):
            if not path.is_file():
                continue
            if pattern and not fnmatch.fnmatch(path.name, pattern):
                continue
            yield path

    def find_class(self, class_name: str, jars: Iterable[Path]) -> Optional[Path]:
        """First jar that contains ``class_name`` (dotted form)."""
        entry = class_name.replace(".", "/") + ".class"
        for jar in jars:
            try:
                with zipfile.ZipFile(jar) as archive:
                    if entry in archive.namelist():
                        logger.info("Found main class %s in %s", class_name, jar)
                        return Path(jar)
            except (OSError, zipfile.BadZipFile) as e:
                logger.debug("Cannot read %s: %s", jar, e)
        return None
