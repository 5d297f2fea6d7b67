"""
Predicates answering "is this part of a scene bundle cached?".

Scan completeness is strict set equality between the scan IDs a manifest
expects (URL present, not archived) and the scan files found in the scan
directory. Only ``<scan_id>.glb`` files count as scans; any other file
(wrong suffix, leftover ``.part``, no suffix) is an orphan. Orphan files fail
the check exactly like missing ones.

Two flavours exist:
- local: expected set from the cached manifest only, never touches the network
- remote: expected set from a manifest freshly fetched from the service
"""

import logging
import os
from pathlib import Path
from typing import Set, Tuple

from .layout import MESH_SUFFIX, DirectoryLayout
from .models import Manifest
from .resolver import SceneResolver
from .store import ManifestStore

logger = logging.getLogger(__name__)


def read_scans_dir(scans_dir: Path) -> Tuple[Set[str], Set[str]]:
    """Split the regular files in ``scans_dir`` into scan IDs and stray file names.

    A missing directory holds nothing.
    """
    scan_ids: Set[str] = set()
    strays: Set[str] = set()
    try:
        with os.scandir(scans_dir) as entries:
            for entry in entries:
                if not entry.is_file():
                    continue
                if entry.name.endswith(MESH_SUFFIX) and len(entry.name) > len(MESH_SUFFIX):
                    scan_ids.add(entry.name[:-len(MESH_SUFFIX)])
                else:
                    strays.add(entry.name)
    except FileNotFoundError:
        pass
    return scan_ids, strays


def present_scan_ids(scans_dir: Path) -> Set[str]:
    return read_scans_dir(scans_dir)[0]


def scans_match(manifest: Manifest, scans_dir: Path) -> bool:
    expected = manifest.expected_scan_ids()
    present, strays = read_scans_dir(scans_dir)
    if expected != present or strays:
        orphaned = sorted(present - expected) + sorted(strays)
        logger.debug(
            f"Scan cache mismatch for {manifest.scene_id}: "
            f"missing={sorted(expected - present)} orphaned={orphaned}"
        )
        return False
    return True


class CompletenessChecker:
    def __init__(self, layout: DirectoryLayout, store: ManifestStore, resolver: SceneResolver):
        self._layout = layout
        self._store = store
        self._resolver = resolver

    async def are_all_scans_cached_local(self, scene_id: str) -> bool:
        """Offline check against the cached manifest; ``False`` if none is cached."""
        manifest = await self._store.load(scene_id)
        if manifest is None:
            return False
        return scans_match(manifest, self._layout.paths_for(scene_id).scans_dir)

    async def are_all_scans_cached_remote(self, scene_id: str, force_refresh: bool = True) -> bool:
        """Check against the service's current manifest (refreshes the cached copy)."""
        manifest = await self._resolver.resolve(scene_id, force_refresh=force_refresh)
        return scans_match(manifest, self._layout.paths_for(scene_id).scans_dir)

    def is_scan_cached(self, scene_id: str, scan_id: str) -> bool:
        return self._layout.paths_for(scene_id).scan_path(scan_id).is_file()

    async def is_enhanced_mesh_cached(self, scene_id: str) -> bool:
        """Vacuously true when the manifest declares no enhanced mesh."""
        manifest = await self._resolver.resolve(scene_id)
        if not manifest.has_enhanced_mesh:
            return True
        return self._layout.paths_for(scene_id).enhanced_mesh_path.is_file()

    def is_cached(self, scene_id: str) -> bool:
        """Loose pre-check: the scene directory exists and holds at least one file.

        Contents are not compared with the manifest.
        """
        base_dir = self._layout.paths_for(scene_id).base_dir
        try:
            with os.scandir(base_dir) as entries:
                return any(entry.is_file() for entry in entries)
        except FileNotFoundError:
            return False
