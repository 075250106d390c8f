"""Tests for library conflict resolution."""

import json

import pytest

from loaderkit.errors import PatchRestoreFailure
from loaderkit.versions import DescriptorPatcher, VersionDescriptor, find_conflicts, reconcile, resolve_conflicts


def descriptor(version_id, *names, **extra):
    return VersionDescriptor(id=version_id, libraries=[{"name": n} for n in names], **extra)


def test_conflicting_library_is_removed_from_base():
    base = descriptor("1.20.1", "com.example:foo:1.0", "org.lwjgl:lwjgl:3.3.1")
    overlay = descriptor("fabric", "com.example:foo:2.0", "net.fabricmc:fabric-loader:0.15.0")

    conflicts = find_conflicts(base, overlay)
    assert len(conflicts) == 1
    assert conflicts[0].key == "com.example:foo"
    assert conflicts[0].base_version == "com.example:foo:1.0"
    assert conflicts[0].overlay_version == "com.example:foo:2.0"

    resolved = resolve_conflicts(base, overlay, conflicts)
    assert [lib.name for lib in resolved.libraries] == ["org.lwjgl:lwjgl:3.3.1"]
    # inputs are untouched
    assert len(base.libraries) == 2
    assert [lib.name for lib in overlay.libraries] == ["com.example:foo:2.0", "net.fabricmc:fabric-loader:0.15.0"]


def test_resolution_is_idempotent():
    base = descriptor("1.20.1", "com.example:foo:1.0", "com.example:bar:1.0")
    overlay = descriptor("fabric", "com.example:foo:2.0")

    once = resolve_conflicts(base, overlay, find_conflicts(base, overlay))
    assert find_conflicts(once, overlay) == []
    twice = resolve_conflicts(once, overlay, find_conflicts(once, overlay))
    assert twice.to_json_dict() == once.to_json_dict()


def test_same_version_is_not_a_conflict():
    base = descriptor("1.20.1", "org.ow2.asm:asm:9.6")
    overlay = descriptor("fabric", "org.ow2.asm:asm:9.6")
    assert find_conflicts(base, overlay) == []


def test_short_coordinates_are_never_conflict_candidates():
    base = descriptor("1.20.1", "bad:coord", "com.example:foo:1.0")
    overlay = descriptor("fabric", "bad:coord2", "bad:coord")

    assert find_conflicts(base, overlay) == []
    resolved = resolve_conflicts(base, overlay, [])
    assert "bad:coord" in [lib.name for lib in resolved.libraries]


def test_missing_asset_index_is_copied_from_overlay():
    base = descriptor("1.20.1", "com.example:foo:1.0")
    overlay = descriptor("fabric", "com.example:foo:2.0", assetIndex={"id": "5", "url": "https://x/5.json"})
    resolved = resolve_conflicts(base, overlay, find_conflicts(base, overlay))
    assert resolved.assetIndex.id == "5"


def test_missing_overlay_asset_index_is_filled_from_base():
    base = descriptor("1.20.1", "com.example:foo:1.0", assetIndex={"id": "5", "url": "https://x/5.json"})
    overlay = descriptor("fabric", "com.example:bar:1.0")

    outcome = reconcile(base, overlay)
    assert outcome.conflicts == []
    assert outcome.overlay.assetIndex.id == "5"
    assert outcome.overlay.assetIndex.url == "https://x/5.json"
    assert overlay.assetIndex is None


def test_every_differing_base_entry_is_a_conflict():
    base = descriptor("1.20.1", "com.example:foo:2.0", "com.example:foo:1.0", "com.example:bar:1.0")
    overlay = descriptor("fabric", "com.example:foo:2.0")

    conflicts = find_conflicts(base, overlay)
    assert [(c.key, c.base_version) for c in conflicts] == [("com.example:foo", "com.example:foo:1.0")]
    resolved = resolve_conflicts(base, overlay, conflicts)
    assert [lib.name for lib in resolved.libraries] == ["com.example:bar:1.0"]


def write_descriptor(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    # odd formatting so a re-serialised copy would differ
    path.write_bytes(json.dumps(data, separators=(",", ":")).encode("utf-8") + b"\n")
    return path.read_bytes()


@pytest.fixture
def descriptor_files(tmp_path):
    base_path = tmp_path / "versions" / "1.20.1" / "1.20.1.json"
    overlay_path = tmp_path / "versions" / "fabric" / "fabric.json"
    base_bytes = write_descriptor(base_path, {
        "id": "1.20.1",
        "customField": {"kept": True},
        "libraries": [{"name": "com.example:foo:1.0"}, {"name": "bad:coord"}],
    })
    overlay_bytes = write_descriptor(overlay_path, {
        "id": "fabric",
        "inheritsFrom": "1.20.1",
        "libraries": [{"name": "com.example:foo:2.0"}],
    })
    return base_path, base_bytes, overlay_path, overlay_bytes


def test_patched_restores_originals_byte_for_byte(descriptor_files):
    base_path, base_bytes, overlay_path, overlay_bytes = descriptor_files

    with DescriptorPatcher().patched(base_path, overlay_path) as outcome:
        working = json.loads(base_path.read_text(encoding="utf-8"))
        assert [lib["name"] for lib in working["libraries"]] == ["bad:coord"]
        assert working["customField"] == {"kept": True}
        assert len(outcome.conflicts) == 1

    assert base_path.read_bytes() == base_bytes
    assert overlay_path.read_bytes() == overlay_bytes
    assert outcome.restore_error is None
    assert set(outcome.restored) == {base_path, overlay_path}


def test_patched_restores_when_the_block_raises(descriptor_files):
    base_path, base_bytes, overlay_path, overlay_bytes = descriptor_files

    with pytest.raises(RuntimeError):
        with DescriptorPatcher().patched(base_path, overlay_path):
            raise RuntimeError("download failed")

    assert base_path.read_bytes() == base_bytes
    assert overlay_path.read_bytes() == overlay_bytes


def test_restore_failure_is_reported(tmp_path, descriptor_files):
    base_path, _, overlay_path, _ = descriptor_files
    patcher = DescriptorPatcher()
    patcher.apply(base_path, overlay_path)
    # a directory where the file was makes the write-back fail
    base_path.unlink()
    base_path.mkdir()

    with pytest.raises(PatchRestoreFailure):
        patcher.restore()


def test_patched_overlay_gains_base_asset_index(tmp_path):
    base_path = tmp_path / "versions" / "1.20.1" / "1.20.1.json"
    overlay_path = tmp_path / "versions" / "fabric" / "fabric.json"
    base_bytes = write_descriptor(base_path, {"id": "1.20.1", "assetIndex": {"id": "5"},
                                              "libraries": [{"name": "com.example:foo:1.0"}]})
    overlay_bytes = write_descriptor(overlay_path, {"id": "fabric", "inheritsFrom": "1.20.1", "libraries": []})

    with DescriptorPatcher().patched(base_path, overlay_path) as outcome:
        assert outcome.conflicts == []
        assert json.loads(overlay_path.read_text(encoding="utf-8"))["assetIndex"] == {"id": "5"}
        # nothing to change in the base, so it keeps its original bytes
        assert base_path.read_bytes() == base_bytes

    assert overlay_path.read_bytes() == overlay_bytes
