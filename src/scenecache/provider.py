"""
Entry point composing the cache, the metadata client and the downloader.

Usage:
    from scenecache import SceneDataProvider, load_config

    async with SceneDataProvider(load_config()) as provider:
        handle = await provider.download_scene("3745b04f-...")
        await provider.download_all_scan_meshes(handle.scene_id)
        mesh = handle.enhanced_mesh_path
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import aiohttp

from .auth import AuthProvider, BearerTokenAuth, HMACAuth
from .client import RemoteMetadataClient, build_session
from .completeness import CompletenessChecker
from .config import SceneCacheConfig
from .downloader import DownloadOrchestrator, DownloadReport, DownloadResult, OverwritePolicy
from .eraser import CacheEraser
from .layout import DirectoryLayout, SceneLayout
from .models import Manifest, ScanMeshDescriptor
from .resolver import SceneResolver, StalenessPredicate
from .store import ManifestStore

logger = logging.getLogger(__name__)

PolicyArg = Optional[Union[OverwritePolicy, str]]


def auth_from_config(config: SceneCacheConfig) -> Optional[AuthProvider]:
    """HMAC signing when ``auth_secret`` is set, else a bearer token, else nothing."""
    if config.auth_secret:
        return HMACAuth(config.auth_secret, token=config.auth_token or None)
    if config.auth_token:
        return BearerTokenAuth(config.auth_token)
    return None


@dataclass(frozen=True)
class SceneHandle:
    """A resolved scene: its manifest and where its files live locally."""

    manifest: Manifest
    layout: SceneLayout

    @property
    def scene_id(self) -> str:
        return self.manifest.scene_id

    @property
    def manifest_path(self) -> Path:
        return self.layout.manifest_path

    @property
    def enhanced_mesh_path(self) -> Optional[Path]:
        return self.layout.enhanced_mesh_path if self.manifest.has_enhanced_mesh else None

    @property
    def environment_path(self) -> Path:
        return self.layout.environment_path

    def asset_path(self, asset_id: str) -> Path:
        if self.manifest.find_asset(asset_id) is None:
            raise KeyError(asset_id)
        return self.layout.asset_path(asset_id)

    def scan_path(self, scan_id: str) -> Path:
        if self.manifest.find_scan(scan_id) is None:
            raise KeyError(scan_id)
        return self.layout.scan_path(scan_id)


class SceneDataProvider:
    """
    Cache-and-fetch façade for scene bundles.

    Owns one ``aiohttp`` session for metadata requests and file transfers
    unless a session is passed in. All state lives on the instance.
    """

    def __init__(
        self,
        config: Optional[SceneCacheConfig] = None,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        auth: Optional[AuthProvider] = None,
        staleness: Optional[StalenessPredicate] = None,
    ):
        self.config = config or SceneCacheConfig()
        self.layout = DirectoryLayout(self.config.cache_root)
        self.store = ManifestStore(self.layout)
        self.eraser = CacheEraser(self.layout)

        if auth is None:
            auth = auth_from_config(self.config)
        self._auth = auth
        self._staleness = staleness
        self._session = session
        self._owns_session = session is None
        self._client: Optional[RemoteMetadataClient] = None
        self._resolver: Optional[SceneResolver] = None
        self._checker: Optional[CompletenessChecker] = None
        self._orchestrator: Optional[DownloadOrchestrator] = None

    async def initialize(self):
        if self._client is not None:
            return

        if self._session is None:
            self._session = build_session(self.config)
            self._owns_session = True

        self._client = RemoteMetadataClient(
            self.config.api_url,
            session=self._session,
            auth=self._auth,
            timeout=self.config.request_timeout,
        )
        self._resolver = SceneResolver(self.layout, self.store, self._client, staleness=self._staleness)
        self._checker = CompletenessChecker(self.layout, self.store, self._resolver)
        self._orchestrator = DownloadOrchestrator.from_config(self.config, self.layout, self.store, self._session)
        logger.debug(f"Scene data provider ready: {self.config!r}")

    async def close(self):
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None
        self._client = self._resolver = self._checker = self._orchestrator = None

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def resolver(self) -> SceneResolver:
        if self._resolver is None:
            raise RuntimeError("SceneDataProvider is not initialized")
        return self._resolver

    @property
    def checker(self) -> CompletenessChecker:
        if self._checker is None:
            raise RuntimeError("SceneDataProvider is not initialized")
        return self._checker

    @property
    def orchestrator(self) -> DownloadOrchestrator:
        if self._orchestrator is None:
            raise RuntimeError("SceneDataProvider is not initialized")
        return self._orchestrator

    # Metadata ---------------------------------------------------------
    async def resolve(self, scene_id: str, force_refresh: bool = False) -> Manifest:
        return await self.resolver.resolve(scene_id, force_refresh=force_refresh)

    async def resolve_handle(self, scene_id: str, force_refresh: bool = False) -> SceneHandle:
        manifest = await self.resolve(scene_id, force_refresh=force_refresh)
        return SceneHandle(manifest, self.layout.paths_for(scene_id))

    async def refresh_cache_info(self, scene_id: str) -> Manifest:
        return await self.resolver.refresh(scene_id)

    async def get_scan_mesh(self, scene_id: str, scan_id: str, skip_cache: bool = False) -> ScanMeshDescriptor:
        return await self.resolver.get_scan_mesh(scene_id, scan_id, skip_cache=skip_cache)

    # Downloads --------------------------------------------------------
    async def download_scene(
        self,
        scene_id: str,
        *,
        force_refresh: bool = False,
        policy: PolicyArg = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> SceneHandle:
        """Resolve the manifest and download the enhanced mesh, assets and environment."""
        handle = await self.resolve_handle(scene_id, force_refresh=force_refresh)
        await self.orchestrator.download_bundle(scene_id, handle.manifest, policy=policy, cancel=cancel)
        return handle

    async def download_all_scan_meshes(
        self,
        scene_id: str,
        *,
        policy: PolicyArg = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> DownloadReport:
        manifest = await self.resolve(scene_id)
        return await self.orchestrator.download_all_scans(scene_id, manifest, policy=policy, cancel=cancel)

    async def download_scan_mesh(
        self,
        scene_id: str,
        scan_id: str,
        *,
        policy: PolicyArg = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> DownloadResult:
        manifest = await self.resolve(scene_id)
        return await self.orchestrator.download_scan(scene_id, manifest, scan_id, policy=policy, cancel=cancel)

    # Cache state ------------------------------------------------------
    def is_cached(self, scene_id: str) -> bool:
        return self.checker.is_cached(scene_id)

    def is_scan_cached(self, scene_id: str, scan_id: str) -> bool:
        return self.checker.is_scan_cached(scene_id, scan_id)

    async def is_enhanced_mesh_cached(self, scene_id: str) -> bool:
        return await self.checker.is_enhanced_mesh_cached(scene_id)

    async def are_all_scans_cached_local(self, scene_id: str) -> bool:
        return await self.checker.are_all_scans_cached_local(scene_id)

    async def are_all_scans_cached_remote(self, scene_id: str) -> bool:
        return await self.checker.are_all_scans_cached_remote(scene_id)

    def delete_cached_data(self, scene_id: str) -> bool:
        return self.eraser.erase(scene_id)
