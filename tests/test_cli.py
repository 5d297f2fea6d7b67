import json

import pytest
from click.testing import CliRunner

from scenecache import cli

from conftest import sample_manifest


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch):
    monkeypatch.setattr(cli, "setup_logging", lambda *args, **kwargs: None)


@pytest.fixture
def invoke(tmp_path):
    runner = CliRunner()

    def _invoke(*args):
        result = runner.invoke(
            cli.main,
            ["--cache-root", str(tmp_path), "--api-url", "http://127.0.0.1:9/layout", *args],
        )
        return result, json.loads(result.output) if result.output.strip() else None

    return _invoke


def _seed_manifest(tmp_path, scene_id="abc-1"):
    scene = tmp_path / "DTHD" / scene_id
    for sub in ("Enhanced", "Assets", "ScanMeshes"):
        (scene / sub).mkdir(parents=True, exist_ok=True)
    (scene / "data.json").write_text(sample_manifest(scene_id).to_json())
    return scene


def test_erase_never_seen_scene(invoke):
    result, payload = invoke("erase", "abc-1")
    assert result.exit_code == 0
    assert payload == {"success": True, "scene_id": "abc-1", "deleted": False}


def test_erase_existing_scene(invoke, tmp_path):
    scene = _seed_manifest(tmp_path)
    result, payload = invoke("erase", "abc-1")
    assert result.exit_code == 0
    assert payload["deleted"] is True
    assert not scene.exists()


def test_status_without_network(invoke, tmp_path):
    scene = _seed_manifest(tmp_path)
    (scene / "ScanMeshes" / "s1.glb").write_bytes(b"x")

    result, payload = invoke("status", "abc-1")

    assert result.exit_code == 0
    assert payload["cached"] is True
    assert payload["manifest_cached"] is True
    assert payload["all_scans_cached_local"] is True
    assert payload["enhanced_mesh_cached"] is False


def test_status_of_uncached_scene(invoke):
    result, payload = invoke("status", "abc-1")
    assert result.exit_code == 0
    assert payload["cached"] is False
    assert "enhanced_mesh_cached" not in payload


def test_resolve_uses_cached_manifest(invoke, tmp_path):
    _seed_manifest(tmp_path)
    result, payload = invoke("resolve", "abc-1")
    assert result.exit_code == 0
    assert payload["manifest"]["DtHdId"] == "abc-1"
    assert payload["manifest_path"].endswith("data.json")


def test_invalid_scene_id_prints_error_payload(invoke):
    result, payload = invoke("erase", "../escape")
    assert result.exit_code == 1
    assert payload["success"] is False
    assert payload["error_code"] == "INVALID_SCENE_ID"


def test_unreachable_service_is_reported(invoke):
    result, payload = invoke("resolve", "abc-1")
    assert result.exit_code == 1
    assert payload["error_code"] == "TRANSPORT_ERROR"
