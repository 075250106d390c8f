#!/usr/bin/env python3
"""LoaderKit console entry point.

Installs a base version plus its mod loader and prints the launch command.
"""

import argparse
import asyncio
import logging
import shlex
import sys
from pathlib import Path
from typing import Dict

from tqdm import tqdm

from loaderkit.config import LauncherConfig
from loaderkit.core import ComprehensiveStrategy, GameInstaller, GameLauncher, RuntimeOptions, SelectiveStrategy
from loaderkit.core.game_launcher import find_java
from loaderkit.utils import ProgressEvent, ProgressNotifier, setup_logging

logger = logging.getLogger("loaderkit")

PHASE_LABELS = {
    "metadata": "Metadata",
    "client": "Client JAR",
    "libraries": "Libraries",
    "loader_libraries": "Loader libraries",
    "verify_assets": "Verifying assets",
    "assets": "Assets",
    "repair_assets": "Repairing assets",
    "virtual_assets": "Virtual assets",
}


class ConsoleProgress:
    """One tqdm bar per phase, closed when the phase completes."""

    def __init__(self):
        self.bars: Dict[str, tqdm] = {}

    def __call__(self, event: ProgressEvent) -> None:
        bar = self.bars.get(event.phase)
        if bar is None or bar.total != event.total:
            if bar is not None:
                bar.close()
            bar = tqdm(total=event.total, desc=PHASE_LABELS.get(event.phase, event.phase),
                       unit="file", leave=False)
            self.bars[event.phase] = bar
        bar.update(event.completed - bar.n)
        if event.completed >= event.total:
            bar.close()
            del self.bars[event.phase]

    def close(self) -> None:
        for bar in self.bars.values():
            bar.close()
        self.bars.clear()


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Install a game version with its mod loader")
    parser.add_argument("version", help="Base game version, e.g. 1.20.1")
    parser.add_argument("--loader", default=None, help="Loader version (default: latest)")
    parser.add_argument("--username", default="Player", help="Offline player name")
    parser.add_argument("--dir", type=Path, default=None, help="Game directory")
    parser.add_argument("--ram-min", default="1G")
    parser.add_argument("--ram-max", default="2G")
    parser.add_argument("--java", default=None, help="Java executable")
    parser.add_argument("--comprehensive", action="store_true",
                        help="Put every jar under the library root on the classpath")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    args = parse_args(argv)
    config = LauncherConfig(ram_min=args.ram_min, ram_max=args.ram_max)
    if args.dir:
        config.minecraft_dir = args.dir
    setup_logging(config.log_dir, logging.DEBUG if args.verbose else logging.WARNING)

    try:
        options = await RuntimeOptions.offline(args.username, java_path=args.java or find_java(),
                                               ram_min=config.ram_min, ram_max=config.ram_max)
    except ValueError as e:
        print(f"{e}: {args.username!r}", file=sys.stderr)
        return 2

    progress = ConsoleProgress()
    installer = GameInstaller(config, ProgressNotifier([progress]))
    try:
        result = await installer.install(args.version, args.loader)
    finally:
        progress.close()

    if result.conflicts:
        for conflict in result.conflicts:
            print(f"Conflict {conflict.key}: using {conflict.overlay_version} over {conflict.base_version}")
    if result.missing_assets:
        print(f"{len(result.missing_assets)} assets could not be repaired")
    if result.missing_libraries:
        print(f"{len(result.missing_libraries)} libraries are missing")
    if result.restore_error:
        print(f"Warning: {result.restore_error}", file=sys.stderr)
    if not result.success:
        print(f"Installation failed: {result.error}", file=sys.stderr)
        return 1

    strategy = ComprehensiveStrategy() if args.comprehensive else SelectiveStrategy()
    launcher = GameLauncher(config, strategy=strategy)
    launch = launcher.prepare_launch(result.descriptor, options)
    print(shlex.join(launch.command))
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
