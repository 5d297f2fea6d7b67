"""Cache-or-fetch resolution of scene manifests."""

import logging
from pathlib import Path
from typing import Callable, Optional

from .client import RemoteMetadataClient
from .errors import InvalidSceneIDError, RemoteError, ScanNotFoundError
from .layout import DirectoryLayout
from .locks import SceneLocks
from .models import Manifest, ScanMeshDescriptor
from .store import ManifestStore

logger = logging.getLogger(__name__)

StalenessPredicate = Callable[[Path, Manifest], bool]

# Statuses the service uses for IDs it does not know
_UNKNOWN_SCENE_STATUSES = (400, 404)


class SceneResolver:
    """
    Returns the manifest for a scene, preferring the local cache.

    A cached manifest is trusted until the caller forces a refresh. An
    optional ``staleness`` predicate can veto a cached copy; nothing expires
    on its own.
    """

    def __init__(
        self,
        layout: DirectoryLayout,
        store: ManifestStore,
        client: RemoteMetadataClient,
        staleness: Optional[StalenessPredicate] = None,
    ):
        self._layout = layout
        self._store = store
        self._client = client
        self._staleness = staleness
        self._scene_locks = SceneLocks()

    async def resolve(self, scene_id: str, force_refresh: bool = False) -> Manifest:
        """Concurrent calls for one scene run one at a time, so a burst fetches once."""
        scene_layout = self._layout.layout_for(scene_id)
        async with self._scene_locks.hold(scene_id):
            return await self._resolve(scene_id, scene_layout.manifest_path, force_refresh)

    async def _resolve(self, scene_id: str, manifest_path: Path, force_refresh: bool) -> Manifest:
        if not force_refresh:
            cached = await self._store.load(scene_id)
            if cached is not None:
                if self._staleness is not None and self._staleness(manifest_path, cached):
                    logger.info(f"Cached manifest for {scene_id} is stale, refetching")
                else:
                    logger.debug(f"Manifest cache hit for {scene_id}")
                    return cached

        try:
            manifest = await self._client.fetch(scene_id)
        except RemoteError as e:
            if e.status in _UNKNOWN_SCENE_STATUSES:
                raise InvalidSceneIDError(scene_id, f"Invalid scene ID {scene_id!r}: {e.message}") from e
            raise

        if manifest is None:
            raise InvalidSceneIDError(scene_id)

        await self._store.save(scene_id, manifest)
        return manifest

    async def refresh(self, scene_id: str) -> Manifest:
        """Fetch from the service even if a cached manifest exists."""
        return await self.resolve(scene_id, force_refresh=True)

    async def get_scan_mesh(self, scene_id: str, scan_id: str, skip_cache: bool = False) -> ScanMeshDescriptor:
        manifest = await self.resolve(scene_id, force_refresh=skip_cache)
        scan = manifest.find_scan(scan_id)
        if scan is None:
            raise ScanNotFoundError(scene_id, scan_id)
        return scan
