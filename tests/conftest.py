"""Pytest configuration: isolated config environment and an in-process scene service."""

from __future__ import annotations

import asyncio
import contextlib
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from scenecache.config import SceneCacheConfig
from scenecache.models import Manifest
from scenecache.provider import SceneDataProvider

# Nothing listens on the discard port, so connections are refused
UNREACHABLE_URL = "http://127.0.0.1:9/unreachable.glb"


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch):
    for key in list(SceneCacheConfig.DEFAULTS):
        monkeypatch.delenv(f"SCENECACHE_{key.upper()}", raising=False)
    monkeypatch.delenv("SCENECACHE_CONFIG_FILE", raising=False)


class FakeSceneService:
    """Stand-in for the metadata endpoint and the file host."""

    def __init__(self):
        self.manifests: Dict[str, Any] = {}
        self.files: Dict[str, bytes] = {
            "e.glb": b"enhanced-mesh" * 100,
            "a1.glb": b"asset-a1",
            "a2.glb": b"asset-a2",
            "a3.glb": b"asset-a3",
            "s1.glb": b"scan-s1" * 50,
            "s3.glb": b"scan-s3",
            "environment.json": json.dumps({"probes": []}).encode(),
        }
        self.metadata_status: Dict[str, Tuple[int, str]] = {}
        self.file_status: Dict[str, int] = {}
        self.metadata_requests: List[Tuple[str, Dict[str, str], Dict[str, str]]] = []
        self.file_requests: List[str] = []
        self.streaming: Optional[asyncio.Event] = None
        self._release: Optional[asyncio.Event] = None
        self._server: Optional[TestServer] = None

    def _build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/layout/{scene_id}", self._metadata)
        app.router.add_get("/files/{name}", self._file)
        return app

    async def __aenter__(self) -> "FakeSceneService":
        self.streaming = asyncio.Event()
        self._release = asyncio.Event()
        self._server = TestServer(self._build_app())
        await self._server.start_server()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self._release.set()
        await self._server.close()

    @property
    def api_url(self) -> str:
        return str(self._server.make_url("/layout"))

    def file_url(self, name: str) -> str:
        return str(self._server.make_url(f"/files/{name}"))

    async def _metadata(self, request: web.Request) -> web.StreamResponse:
        scene_id = request.match_info["scene_id"]
        self.metadata_requests.append((scene_id, dict(request.query), dict(request.headers)))
        if scene_id in self.metadata_status:
            status, text = self.metadata_status[scene_id]
            return web.Response(status=status, text=text)
        if scene_id not in self.manifests:
            return web.Response(status=404, text="Layout not found")
        body = self.manifests[scene_id]
        if isinstance(body, (bytes, str)):
            return web.Response(body=body, content_type="application/json")
        return web.json_response(body)

    async def _file(self, request: web.Request) -> web.StreamResponse:
        name = request.match_info["name"]
        self.file_requests.append(name)
        if name in self.file_status:
            return web.Response(status=self.file_status[name], text="nope")
        if name == "slow.glb":
            response = web.StreamResponse()
            await response.prepare(request)
            await response.write(b"partial" * 64)
            self.streaming.set()
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._release.wait(), timeout=30)
            return response
        if name not in self.files:
            return web.Response(status=404, text="missing")
        return web.Response(body=self.files[name])

    def bundle_manifest(self, scene_id: str = "abc-1") -> Dict[str, Any]:
        return {
            "DtHdId": scene_id,
            "Name": "Test scene",
            "RefX": 10.5,
            "RefY": 20.25,
            "RefZ": 1.0,
            "EnhancedMesh": self.file_url("e.glb"),
            "Assets": [
                {
                    "DtHdAssetId": "a1",
                    "FileUrl": self.file_url("a1.glb"),
                    "Items": [
                        {"DtHdAssetItemId": "a1-0", "LocalX": 1.0, "LocalY": 2.0, "LocalZ": 3.0, "Scale": 2.0},
                    ],
                },
            ],
            "ScanMeshes": [
                {"DtHdScanId": "s1", "ScanMeshUrl": self.file_url("s1.glb"), "Status": "ACTIVE"},
                {"DtHdScanId": "s2", "ScanMeshUrl": "", "Status": "ACTIVE"},
            ],
            "DtEnvironmentUrl": self.file_url("environment.json"),
        }


def make_config(cache_root: Path, api_url: str = "http://127.0.0.1:9/layout", **overrides) -> SceneCacheConfig:
    return SceneCacheConfig(cache_root=str(cache_root), api_url=api_url, **overrides)


def make_provider(cache_root: Path, service: Optional[FakeSceneService] = None, **overrides) -> SceneDataProvider:
    api_url = service.api_url if service is not None else "http://127.0.0.1:9/layout"
    return SceneDataProvider(make_config(cache_root, api_url, **overrides))


def sample_manifest(scene_id: str = "abc-1", **fields) -> Manifest:
    data: Dict[str, Any] = {
        "DtHdId": scene_id,
        "EnhancedMesh": "http://x/e.glb",
        "Assets": [{"DtHdAssetId": "a1", "FileUrl": "http://x/a1.glb"}],
        "ScanMeshes": [
            {"DtHdScanId": "s1", "ScanMeshUrl": "http://x/s1.glb", "Status": "ACTIVE"},
            {"DtHdScanId": "s2", "ScanMeshUrl": "", "Status": "ACTIVE"},
            {"DtHdScanId": "s3", "ScanMeshUrl": "http://x/s3.glb", "Status": "ARCHIVED"},
        ],
        "DtEnvironmentUrl": "http://x/environment.json",
    }
    data.update(fields)
    return Manifest.model_validate(data)
