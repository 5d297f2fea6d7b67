"""
Deterministic on-disk layout for cached scene bundles.

    <cache_root>/DTHD/<scene_id>/data.json               manifest
    <cache_root>/DTHD/<scene_id>/Enhanced/Enhanced.glb   enhanced mesh
    <cache_root>/DTHD/<scene_id>/Assets/<asset_id>.glb   one file per asset
    <cache_root>/DTHD/<scene_id>/ScanMeshes/<scan_id>.glb
    <cache_root>/DTHD/<scene_id>/environment.json        reflection probes / lights
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from .errors import InvalidSceneIDError
from .models import is_safe_component

logger = logging.getLogger(__name__)

SCENES_DIRNAME = 'DTHD'
MANIFEST_FILENAME = 'data.json'
ENHANCED_DIRNAME = 'Enhanced'
ENHANCED_FILENAME = 'Enhanced.glb'
ASSETS_DIRNAME = 'Assets'
SCANS_DIRNAME = 'ScanMeshes'
ENVIRONMENT_FILENAME = 'environment.json'
MESH_SUFFIX = '.glb'


def validate_scene_id(scene_id: str) -> str:
    """Reject scene IDs that cannot be used as a single directory name."""
    if not isinstance(scene_id, str) or not is_safe_component(scene_id):
        raise InvalidSceneIDError(str(scene_id), f"Scene ID {scene_id!r} is not a valid cache key")
    return scene_id


@dataclass(frozen=True)
class SceneLayout:
    """Filesystem paths for one scene ID."""

    scene_id: str
    base_dir: Path

    @property
    def manifest_path(self) -> Path:
        return self.base_dir / MANIFEST_FILENAME

    @property
    def enhanced_dir(self) -> Path:
        return self.base_dir / ENHANCED_DIRNAME

    @property
    def enhanced_mesh_path(self) -> Path:
        return self.enhanced_dir / ENHANCED_FILENAME

    @property
    def assets_dir(self) -> Path:
        return self.base_dir / ASSETS_DIRNAME

    @property
    def scans_dir(self) -> Path:
        return self.base_dir / SCANS_DIRNAME

    @property
    def environment_path(self) -> Path:
        return self.base_dir / ENVIRONMENT_FILENAME

    def asset_path(self, asset_id: str) -> Path:
        return self.assets_dir / f"{asset_id}{MESH_SUFFIX}"

    def scan_path(self, scan_id: str) -> Path:
        return self.scans_dir / f"{scan_id}{MESH_SUFFIX}"

    def ensure(self) -> 'SceneLayout':
        """Create the sub-directories if missing. Never touches files."""
        for directory in (self.enhanced_dir, self.assets_dir, self.scans_dir):
            directory.mkdir(parents=True, exist_ok=True)
        return self


class DirectoryLayout:
    """Maps scene IDs to their directories under a cache root."""

    def __init__(self, cache_root: Union[str, Path]):
        self.cache_root = Path(cache_root).expanduser()

    @property
    def scenes_root(self) -> Path:
        return self.cache_root / SCENES_DIRNAME

    def paths_for(self, scene_id: str) -> SceneLayout:
        """Compute the layout without creating anything on disk."""
        validate_scene_id(scene_id)
        return SceneLayout(scene_id=scene_id, base_dir=self.scenes_root / scene_id)

    def layout_for(self, scene_id: str) -> SceneLayout:
        """Compute the layout and make sure its directories exist."""
        layout = self.paths_for(scene_id).ensure()
        logger.debug(f"Scene layout ready: {layout.base_dir}")
        return layout
