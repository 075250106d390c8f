"""Tests for launch argument construction."""

import json
import os
from pathlib import Path

import pytest

from loaderkit.auth.offline import offline_uuid
from loaderkit.config import LauncherConfig
from loaderkit.core.arguments import LaunchCommandBuilder, RuntimeOptions, substitute
from loaderkit.versions.models import VersionDescriptor
from loaderkit.versions.rules import PlatformInfo

LINUX = PlatformInfo(os_name="linux", os_version="6.1.0", arch="x86_64", bits=64)


@pytest.fixture
def builder(tmp_path):
    return LaunchCommandBuilder(LauncherConfig(minecraft_dir=tmp_path), LINUX)


def modern_descriptor():
    return VersionDescriptor.model_validate({
        "id": "fabric-loader-0.15.0-1.20.1",
        "type": "release",
        "mainClass": "net.fabricmc.loader.impl.launch.knot.KnotClient",
        "assetIndex": {"id": "5"},
        "arguments": {
            "game": [
                "--username", "${auth_player_name}",
                "--uuid", "${auth_uuid}",
                "--assetsDir", "${assets_root}",
                "--assetIndex", "${assets_index_name}",
                {"rules": [{"action": "allow", "features": {"is_demo_user": True}}], "value": "--demo"},
                {"rules": [{"action": "allow", "features": {"has_custom_resolution": True}}],
                 "value": ["--width", "${resolution_width}"]},
            ],
            "jvm": [
                {"rules": [{"action": "allow", "os": {"name": "osx"}}], "value": ["-XstartOnFirstThread"]},
                {"rules": [{"action": "allow", "os": {"name": "linux"}}], "value": "-Dos.linux=true"},
                "-Djava.library.path=${natives_directory}",
                "-cp",
                "${classpath}",
            ],
        },
    })


def test_substitute_leaves_unknown_placeholders():
    assert substitute("${a}-${unknown}", {"a": "x"}) == "x-${unknown}"
    # values are inserted literally
    assert substitute("${a}", {"a": r"C:\path\1"}) == r"C:\path\1"


def test_modern_arguments(builder, tmp_path):
    options = RuntimeOptions(username="Player", ram_min="512M", ram_max="4G", extra_jvm_args=[])
    classpath = [Path("/lib/a.jar"), Path("/lib/b.jar")]
    args = builder.build_args(modern_descriptor(), options, classpath, tmp_path / "natives")

    main_index = args.index("net.fabricmc.loader.impl.launch.knot.KnotClient")
    jvm, game = args[:main_index], args[main_index + 1:]

    assert jvm[:2] == ["-Xms512M", "-Xmx4G"]
    assert "-XstartOnFirstThread" not in jvm
    assert "-Dos.linux=true" in jvm
    assert f"-Djava.library.path={tmp_path / 'natives'}" in jvm
    assert jvm[jvm.index("-cp") + 1] == os.pathsep.join(["/lib/a.jar", "/lib/b.jar"])

    assert game[:4] == ["--username", "Player", "--uuid", offline_uuid("Player")]
    assert game[game.index("--assetIndex") + 1] == "5"
    assert "--demo" not in game
    assert "--width" not in game


def test_features_enable_conditional_arguments(builder, tmp_path):
    options = RuntimeOptions(username="Player", features={"has_custom_resolution": True})
    args = builder.build_args(modern_descriptor(), options, [], tmp_path)
    assert args[args.index("--width") + 1] == "${resolution_width}"


def test_legacy_arguments_and_virtual_assets(builder, tmp_path):
    indexes = tmp_path / "assets" / "indexes"
    indexes.mkdir(parents=True)
    (indexes / "legacy.json").write_text(json.dumps({"virtual": True, "objects": {}}), encoding="utf-8")
    descriptor = VersionDescriptor(
        id="1.5.2",
        assets="legacy",
        mainClass="net.minecraft.client.Minecraft",
        minecraftArguments="${auth_player_name} ${auth_session} --gameDir ${game_directory} "
                           "--assetsDir ${game_assets}",
    )
    options = RuntimeOptions(username="Steve", extra_jvm_args=[])
    args = builder.build_args(descriptor, options, [Path("/lib/a.jar")], tmp_path / "natives")

    assert args[:6] == ["-Xms1G", "-Xmx2G", f"-Djava.library.path={tmp_path / 'natives'}", "-cp", "/lib/a.jar",
                        "net.minecraft.client.Minecraft"]
    assert args[6:8] == ["Steve", "null"]
    assert args[args.index("--gameDir") + 1] == str(tmp_path)
    assert args[args.index("--assetsDir") + 1] == str(tmp_path / "assets" / "virtual" / "legacy")


def test_missing_main_class_is_an_error(builder, tmp_path):
    with pytest.raises(ValueError):
        builder.build_args(VersionDescriptor(id="x"), RuntimeOptions(username="Player"), [], tmp_path)
