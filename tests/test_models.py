import pytest
from pydantic import ValidationError

from scenecache.models import Manifest, is_safe_component

from conftest import sample_manifest


def test_manifest_parses_pascal_case_payload():
    manifest = sample_manifest()
    assert manifest.scene_id == "abc-1"
    assert manifest.enhanced_mesh == "http://x/e.glb"
    assert [a.asset_id for a in manifest.assets] == ["a1"]
    assert manifest.environment_url == "http://x/environment.json"


def test_manifest_matches_keys_case_insensitively():
    manifest = Manifest.model_validate({
        "dtHdId": "scene-7",
        "enhancedMesh": "http://x/e.glb",
        "scanMeshes": [{"dtHdScanId": "s1", "scanMeshUrl": "http://x/s1.glb", "status": "ACTIVE"}],
        "reflectionProbeInfoUrl": "http://x/env.json",
        "somethingNew": 42,
    })
    assert manifest.scene_id == "scene-7"
    assert manifest.scan_meshes[0].scan_mesh_url == "http://x/s1.glb"
    assert manifest.environment_url == "http://x/env.json"


def test_null_collections_and_urls_become_empty():
    manifest = Manifest.model_validate({
        "DtHdId": "abc",
        "Assets": None,
        "ScanMeshes": [{"DtHdScanId": "s1", "ScanMeshUrl": None, "Status": None}],
    })
    assert manifest.assets == []
    assert manifest.scan_meshes[0].scan_mesh_url == ""
    assert manifest.has_enhanced_mesh is False


def test_expected_scan_ids_excludes_archived_and_url_less_scans():
    manifest = sample_manifest()
    assert manifest.expected_scan_ids() == {"s1"}
    assert manifest.find_scan("s3").is_archived
    assert not manifest.find_scan("s2").is_downloadable


def test_duplicate_scan_ids_are_rejected():
    with pytest.raises(ValidationError):
        Manifest.model_validate({
            "DtHdId": "abc",
            "ScanMeshes": [{"DtHdScanId": "s1"}, {"DtHdScanId": "s1"}],
        })


def test_duplicate_asset_ids_are_rejected():
    with pytest.raises(ValidationError):
        Manifest.model_validate({
            "DtHdId": "abc",
            "Assets": [{"DtHdAssetId": "a1"}, {"DtHdAssetId": "a1"}],
        })


@pytest.mark.parametrize("bad_id", ["../escape", "a/b", "..", ""])
def test_ids_must_be_single_path_components(bad_id):
    with pytest.raises(ValidationError):
        Manifest.model_validate({"DtHdId": "abc", "Assets": [{"DtHdAssetId": bad_id}]})
    assert not is_safe_component(bad_id)


def test_json_round_trip_keeps_canonical_keys():
    manifest = sample_manifest()
    payload = manifest.to_json()
    assert '"DtHdId":"abc-1"' in payload
    assert '"DtEnvironmentUrl"' in payload
    assert Manifest.model_validate_json(payload) == manifest


def test_asset_placement_exposes_transform():
    manifest = Manifest.model_validate({
        "DtHdId": "abc",
        "Assets": [{
            "DtHdAssetId": "a1",
            "Items": [{"DtHdAssetItemId": "i1", "LocalX": 1, "LocalY": 2, "LocalZ": 3, "RotationW": 0.5}],
        }],
    })
    item = manifest.assets[0].items[0]
    assert item.position == (1.0, 2.0, 3.0)
    assert item.rotation == (0.0, 0.0, 0.0, 0.5)
    assert item.scale == 1.0
