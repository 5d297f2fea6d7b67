"""Removal of a scene's entire local footprint."""

import logging
import shutil

from .errors import CacheIOError
from .layout import DirectoryLayout

logger = logging.getLogger(__name__)


class CacheEraser:
    def __init__(self, layout: DirectoryLayout):
        self._layout = layout

    def erase(self, scene_id: str) -> bool:
        """Recursively delete the scene directory.

        Returns ``True`` when something was deleted; a scene that was never
        cached is a no-op.
        """
        base_dir = self._layout.paths_for(scene_id).base_dir
        if not base_dir.exists():
            logger.debug(f"Nothing cached for scene {scene_id}")
            return False

        try:
            shutil.rmtree(base_dir)
        except OSError as e:
            raise CacheIOError(base_dir, f"Cannot delete cached data for scene {scene_id}: {e}") from e
        logger.info(f"Deleted cached data for scene {scene_id} at {base_dir}")
        return True
