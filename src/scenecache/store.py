"""Read/write of the cached manifest (``data.json``) for a scene ID."""

from __future__ import annotations

import json
import logging
import uuid
from typing import Optional

import aiofiles
import aiofiles.os
from pydantic import ValidationError

from .errors import CacheIOError, CorruptCacheError
from .layout import DirectoryLayout
from .models import Manifest

logger = logging.getLogger(__name__)


class ManifestStore:
    """Local manifest persistence. Existence is the only freshness signal."""

    def __init__(self, layout: DirectoryLayout):
        self._layout = layout

    async def exists(self, scene_id: str) -> bool:
        path = self._layout.paths_for(scene_id).manifest_path
        if not await aiofiles.os.path.isfile(path):
            return False
        return (await aiofiles.os.stat(path)).st_size > 0

    async def load(self, scene_id: str) -> Optional[Manifest]:
        """Return the cached manifest, or ``None`` when missing or zero-length.

        Raises:
            CorruptCacheError: the file exists but does not hold a valid manifest
            CacheIOError: the file cannot be read (permissions, a directory in its place)
        """
        path = self._layout.paths_for(scene_id).manifest_path
        try:
            async with aiofiles.open(path, 'r', encoding='utf-8') as f:
                raw = await f.read()
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as e:
            raise CorruptCacheError(path, f"Cached manifest is not UTF-8 text: {e}") from e
        except OSError as e:
            raise CacheIOError(path, f"Cannot read cached manifest: {e}") from e

        if not raw.strip():
            return None

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CorruptCacheError(path, f"Cached manifest is not valid JSON: {e}") from e

        if data is None:
            return None

        try:
            manifest = Manifest.model_validate(data)
        except ValidationError as e:
            raise CorruptCacheError(path, f"Cached manifest does not match the schema: {e}") from e

        logger.debug(f"Loaded cached manifest for {scene_id} from {path}")
        return manifest

    async def save(self, scene_id: str, manifest: Manifest) -> None:
        """Overwrite the cached manifest unconditionally.

        The document is written next to the target and renamed over it so a
        reader never observes a half-written file.
        """
        layout = self._layout.paths_for(scene_id)
        path = layout.manifest_path
        # Unique per write so concurrent saves never rename each other's file
        tmp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")

        try:
            await aiofiles.os.makedirs(layout.base_dir, exist_ok=True)
            async with aiofiles.open(tmp_path, 'w', encoding='utf-8') as f:
                await f.write(manifest.to_json())
            await aiofiles.os.replace(tmp_path, path)
        except BaseException as e:
            if await aiofiles.os.path.exists(tmp_path):
                await aiofiles.os.remove(tmp_path)
            if isinstance(e, OSError):
                raise CacheIOError(path, f"Cannot write cached manifest: {e}") from e
            raise

        logger.info(f"Saved manifest for {scene_id} to {path}")
