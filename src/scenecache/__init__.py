"""Cache-and-fetch orchestration for composite 3D scene bundles."""

from .config import SceneCacheConfig, load_config
from .downloader import DownloadReport, DownloadResult, OverwritePolicy
from .errors import (
    BundleDownloadError,
    CacheIOError,
    CorruptCacheError,
    DownloadCancelledError,
    DownloadFailedError,
    InvalidSceneIDError,
    MalformedResponseError,
    RemoteError,
    ScanNotDownloadableError,
    ScanNotFoundError,
    SceneCacheError,
    TransportError,
)
from .models import AssetDescriptor, AssetPlacement, Manifest, ScanMeshDescriptor
from .provider import SceneDataProvider, SceneHandle

__version__ = "0.1.0"

__all__ = [
    "SceneCacheConfig",
    "load_config",
    "SceneDataProvider",
    "SceneHandle",
    "Manifest",
    "AssetDescriptor",
    "AssetPlacement",
    "ScanMeshDescriptor",
    "OverwritePolicy",
    "DownloadReport",
    "DownloadResult",
    "SceneCacheError",
    "InvalidSceneIDError",
    "TransportError",
    "RemoteError",
    "MalformedResponseError",
    "CorruptCacheError",
    "CacheIOError",
    "DownloadFailedError",
    "BundleDownloadError",
    "DownloadCancelledError",
    "ScanNotFoundError",
    "ScanNotDownloadableError",
]
