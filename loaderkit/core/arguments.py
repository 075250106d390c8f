"""Launch argument construction."""

import json
import logging
import os
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from ..auth.offline import OfflineAuthenticator, offline_uuid
from ..config import LauncherConfig
from ..versions.models import Argument, ConditionalArgument, VersionDescriptor
from ..versions.rules import PlatformInfo, RuleEvaluator

logger = logging.getLogger(__name__)

PLACEHOLDER = re.compile(r"\$\{([A-Za-z0-9_]+)\}")

DEFAULT_JVM_ARGS = ["-Djava.library.path=${natives_directory}", "-cp", "${classpath}"]

GC_ARGS = [
    "-XX:+UnlockExperimentalVMOptions",
    "-XX:+UseG1GC",
    "-XX:G1NewSizePercent=20",
    "-XX:G1ReservePercent=20",
    "-XX:MaxGCPauseMillis=50",
    "-XX:G1HeapRegionSize=32M",
]


class RuntimeOptions(BaseModel):
    username: str
    java_path: str = "java"
    ram_min: str = "1G"
    ram_max: str = "2G"
    access_token: str = "null"
    user_type: str = "mojang"
    features: Dict[str, bool] = Field(default_factory=dict)
    extra_jvm_args: List[str] = Field(default_factory=lambda: list(GC_ARGS))
    game_dir: Optional[Path] = None
    player_uuid: Optional[str] = None

    @classmethod
    async def offline(cls, username: str, **kwargs) -> "RuntimeOptions":
        """Options for an offline profile; rejects names the game would refuse."""
        profile = await OfflineAuthenticator.authenticate(username)
        return cls(username=profile["name"], player_uuid=profile["id"],
                   access_token=profile["access_token"], **kwargs)

    @property
    def uuid(self) -> str:
        return self.player_uuid or offline_uuid(self.username)


def substitute(arg: str, values: Dict[str, str]) -> str:
    """Replace ``${name}`` placeholders; unknown names are left as they are."""
    return PLACEHOLDER.sub(lambda m: values.get(m.group(1), m.group(0)), arg)


class LaunchCommandBuilder:
    def __init__(self, config: Optional[LauncherConfig] = None,
                 platform_info: Optional[PlatformInfo] = None):
        self.config = config or LauncherConfig()
        self.platform_info = platform_info

    def uses_virtual_assets(self, descriptor: VersionDescriptor) -> bool:
        index_path = self.config.assets_dir / "indexes" / f"{descriptor.asset_index_id}.json"
        if not index_path.is_file():
            return False
        try:
            return bool(json.loads(index_path.read_text(encoding="utf-8")).get("virtual", False))
        except (OSError, ValueError) as e:
            logger.warning("Cannot read asset index %s: %s", index_path, e)
            return False

    def placeholders(self, descriptor: VersionDescriptor, options: RuntimeOptions,
                     classpath: Iterable[Path], natives_dir: Path,
                     virtual_assets: Optional[bool] = None) -> Dict[str, str]:
        if virtual_assets is None:
            virtual_assets = self.uses_virtual_assets(descriptor)
        assets_root = self.config.assets_dir
        game_assets = assets_root / "virtual" / "legacy" if virtual_assets else assets_root
        return {
            "auth_player_name": options.username,
            "auth_uuid": options.uuid,
            "auth_access_token": options.access_token,
            "auth_session": options.access_token,
            "user_type": options.user_type,
            "user_properties": "{}",
            "version_name": descriptor.id,
            "version_type": descriptor.type or "release",
            "assets_index_name": descriptor.asset_index_id,
            "assets_root": str(assets_root),
            "game_assets": str(game_assets),
            "game_directory": str(options.game_dir or self.config.minecraft_dir),
            "natives_directory": str(natives_dir),
            "classpath": os.pathsep.join(str(p) for p in classpath),
            "classpath_separator": os.pathsep,
            "library_directory": str(self.config.libraries_dir),
            "launcher_name": self.config.launcher_name,
            "launcher_version": self.config.launcher_version,
        }

    @staticmethod
    def expand(arguments: Iterable[Argument], evaluator: RuleEvaluator) -> List[str]:
        """Literal arguments plus the values of conditional ones whose rules pass."""
        expanded: List[str] = []
        for arg in arguments:
            if isinstance(arg, ConditionalArgument):
                if evaluator.applies(arg.rules):
                    expanded.extend(arg.values)
            else:
                expanded.append(arg)
        return expanded

    def jvm_args(self, descriptor: VersionDescriptor, options: RuntimeOptions,
                 evaluator: RuleEvaluator) -> List[str]:
        args = [f"-Xms{options.ram_min}", f"-Xmx{options.ram_max}", *options.extra_jvm_args]
        declared = self.expand(descriptor.arguments.jvm, evaluator) if descriptor.arguments else []
        if not any("${classpath}" in arg for arg in declared):
            declared = DEFAULT_JVM_ARGS + declared
        return args + declared

    def game_args(self, descriptor: VersionDescriptor, evaluator: RuleEvaluator) -> List[str]:
        if descriptor.arguments and descriptor.arguments.game:
            return self.expand(descriptor.arguments.game, evaluator)
        if descriptor.minecraftArguments:
            return descriptor.minecraftArguments.split()
        return []

    def build_args(self, descriptor: VersionDescriptor, options: RuntimeOptions,
                   classpath: Iterable[Path], natives_dir: Path,
                   virtual_assets: Optional[bool] = None) -> List[str]:
        """JVM arguments, main class, then game arguments."""
        if not descriptor.mainClass:
            raise ValueError(f"Descriptor {descriptor.id} has no main class")
        evaluator = RuleEvaluator(self.platform_info, options.features)
        values = self.placeholders(descriptor, options, list(classpath), natives_dir, virtual_assets)

        jvm = [substitute(arg, values) for arg in self.jvm_args(descriptor, options, evaluator)]
        game = [substitute(arg, values) for arg in self.game_args(descriptor, evaluator)]
        return jvm + [descriptor.mainClass] + game
