"""Launch command preparation.

The process is not spawned here; callers hand :class:`LaunchCommand` to
whatever supervises the game process.
"""

import logging
import os
import platform
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel

from ..config import LauncherConfig
from ..versions.models import VersionDescriptor
from ..versions.rules import RuleEvaluator
from .arguments import LaunchCommandBuilder, RuntimeOptions
from .classpath import ClasspathComposer, ClasspathStrategy, NativeExtraction

logger = logging.getLogger(__name__)


def find_java() -> str:
    """Java executable from ``JAVA_HOME``, else ``java`` on PATH."""
    java_home = os.environ.get("JAVA_HOME")
    if java_home:
        java_bin = Path(java_home) / "bin" / ("java.exe" if platform.system() == "Windows" else "java")
        if java_bin.exists():
            return str(java_bin)
    return "java"


class LaunchCommand(BaseModel):
    command: List[str]
    cwd: Path
    main_class: str
    classpath: List[Path]
    natives: NativeExtraction

    @property
    def natives_dir(self) -> Path:
        return self.natives.directory


class GameLauncher:
    def __init__(self, config: Optional[LauncherConfig] = None,
                 strategy: Optional[ClasspathStrategy] = None,
                 evaluator: Optional[RuleEvaluator] = None):
        self.config = config or LauncherConfig()
        self.evaluator = evaluator or RuleEvaluator()
        self.composer = ClasspathComposer(self.config.libraries_dir, self.config.versions_dir,
                                          strategy=strategy, evaluator=self.evaluator)
        self.builder = LaunchCommandBuilder(self.config, self.evaluator.platform)

    def natives_dir(self, descriptor: VersionDescriptor) -> Path:
        return self.config.versions_dir / descriptor.id / "natives"

    def prepare_launch(self, descriptor: VersionDescriptor, options: RuntimeOptions) -> LaunchCommand:
        """Compose the classpath, extract natives and build the command line."""
        classpath = self.composer.build_classpath(descriptor)
        logger.info("Extracting native libraries...")
        natives = self.composer.extract_natives(descriptor, self.natives_dir(descriptor))

        args = self.builder.build_args(descriptor, options, classpath, natives.directory)
        command = [options.java_path] + args
        logger.info("Launch command: %s", " ".join(command))
        return LaunchCommand(
            command=command,
            cwd=options.game_dir or self.config.minecraft_dir,
            main_class=descriptor.mainClass,
            classpath=classpath,
            natives=natives,
        )
