"""Installation, classpath composition and launch command assembly."""

from .arguments import LaunchCommandBuilder, RuntimeOptions
from .classpath import ClasspathComposer, ComprehensiveStrategy, SelectiveStrategy
from .enumerator import ArtifactEnumerator
from .game_launcher import GameLauncher, LaunchCommand
from .installer import GameInstaller, InstallResult, IntegrityReport

__all__ = [
    "LaunchCommandBuilder", "RuntimeOptions",
    "ClasspathComposer", "ComprehensiveStrategy", "SelectiveStrategy",
    "ArtifactEnumerator", "GameLauncher", "LaunchCommand",
    "GameInstaller", "InstallResult", "IntegrityReport",
]
