import asyncio

import pytest

from scenecache.errors import CacheIOError, CorruptCacheError, InvalidSceneIDError
from scenecache.layout import DirectoryLayout
from scenecache.store import ManifestStore

from conftest import sample_manifest


@pytest.fixture
def layout(tmp_path):
    return DirectoryLayout(tmp_path)


@pytest.fixture
def store(layout):
    return ManifestStore(layout)


def test_layout_for_creates_directories_but_no_files(layout, tmp_path):
    scene = layout.layout_for("abc-1")

    assert scene.base_dir == tmp_path / "DTHD" / "abc-1"
    assert scene.enhanced_dir.is_dir()
    assert scene.assets_dir.is_dir()
    assert scene.scans_dir.is_dir()
    assert not scene.manifest_path.exists()
    assert not scene.environment_path.exists()
    assert [p for p in scene.base_dir.iterdir() if p.is_file()] == []


def test_layout_for_is_idempotent(layout):
    first = layout.layout_for("abc-1")
    (first.scans_dir / "s1.glb").write_bytes(b"x")
    second = layout.layout_for("abc-1")
    assert first == second
    assert (second.scans_dir / "s1.glb").read_bytes() == b"x"


def test_paths_for_does_not_touch_disk(layout):
    scene = layout.paths_for("abc-1")
    assert scene.scan_path("s1").name == "s1.glb"
    assert scene.asset_path("a1").name == "a1.glb"
    assert scene.enhanced_mesh_path.name == "Enhanced.glb"
    assert not scene.base_dir.exists()


@pytest.mark.parametrize("scene_id", ["", "..", "a/b", "../../etc"])
def test_unsafe_scene_ids_are_rejected(layout, scene_id):
    with pytest.raises(InvalidSceneIDError):
        layout.layout_for(scene_id)


def test_load_missing_manifest_is_absent(store):
    assert asyncio.run(store.load("abc-1")) is None


def test_load_zero_length_manifest_is_absent(layout, store):
    scene = layout.layout_for("abc-1")
    scene.manifest_path.write_text("")
    assert asyncio.run(store.load("abc-1")) is None
    assert asyncio.run(store.exists("abc-1")) is False


def test_save_then_load(store, layout):
    manifest = sample_manifest()
    asyncio.run(store.save("abc-1", manifest))

    assert layout.paths_for("abc-1").manifest_path.is_file()
    assert asyncio.run(store.load("abc-1")) == manifest
    assert asyncio.run(store.exists("abc-1")) is True


def test_save_overwrites_unconditionally(store):
    asyncio.run(store.save("abc-1", sample_manifest(Name="first")))
    asyncio.run(store.save("abc-1", sample_manifest(Name="second")))
    assert asyncio.run(store.load("abc-1")).name == "second"


def test_save_leaves_no_temporary_file(store, layout):
    asyncio.run(store.save("abc-1", sample_manifest()))
    names = sorted(p.name for p in layout.paths_for("abc-1").base_dir.iterdir() if p.is_file())
    assert names == ["data.json"]


def test_invalid_json_is_corrupt_cache(layout, store):
    scene = layout.layout_for("abc-1")
    scene.manifest_path.write_text("{not json")
    with pytest.raises(CorruptCacheError) as excinfo:
        asyncio.run(store.load("abc-1"))
    assert excinfo.value.path == scene.manifest_path
    assert excinfo.value.to_payload()["error_code"] == "CORRUPT_CACHE"


def test_schema_mismatch_is_corrupt_cache(layout, store):
    scene = layout.layout_for("abc-1")
    scene.manifest_path.write_text('{"Assets": "not-a-list"}')
    with pytest.raises(CorruptCacheError):
        asyncio.run(store.load("abc-1"))


def test_concurrent_saves_all_succeed(store, layout):
    async def scenario():
        for _ in range(20):
            await asyncio.gather(*(store.save("abc-1", sample_manifest(Name=f"v{i}")) for i in range(4)))

    asyncio.run(scenario())

    names = sorted(p.name for p in layout.paths_for("abc-1").base_dir.iterdir() if p.is_file())
    assert names == ["data.json"]
    assert asyncio.run(store.load("abc-1")).name in {"v0", "v1", "v2", "v3"}


def test_unreadable_manifest_is_an_io_error_not_corruption(layout, store):
    scene = layout.layout_for("abc-1")
    scene.manifest_path.mkdir()

    with pytest.raises(CacheIOError) as excinfo:
        asyncio.run(store.load("abc-1"))
    assert not isinstance(excinfo.value, CorruptCacheError)
    assert excinfo.value.to_payload()["error_code"] == "CACHE_IO_ERROR"
    assert asyncio.run(store.exists("abc-1")) is False


def test_non_utf8_manifest_is_corrupt(layout, store):
    scene = layout.layout_for("abc-1")
    scene.manifest_path.write_bytes(b"\xff\xfe\x00garbage")
    with pytest.raises(CorruptCacheError):
        asyncio.run(store.load("abc-1"))


def test_failed_save_is_an_io_error_and_leaves_no_temp_file(layout, store):
    scene = layout.layout_for("abc-1")
    scene.manifest_path.mkdir()
    (scene.manifest_path / "occupied").write_text("x")

    with pytest.raises(CacheIOError):
        asyncio.run(store.save("abc-1", sample_manifest()))
    assert [p.name for p in scene.base_dir.iterdir() if p.is_file()] == []
