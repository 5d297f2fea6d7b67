"""Domain-specific errors and helpers for scenecache."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:  # pragma: no cover
    from .downloader import DownloadReport


@dataclass
class ErrorPayload:
    """Structured error payload returned to CLI and library callers."""

    code: str
    message: str
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": False,
            "error_code": self.code,
            "error": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class SceneCacheError(Exception):
    """Base exception for all scene cache failures."""

    code: str = "SCENE_CACHE_ERROR"
    retriable: bool = False

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_payload(self) -> Dict[str, Any]:
        return ErrorPayload(self.code, self.message, self.details or None).to_dict()


class InvalidSceneIDError(SceneCacheError):
    code = "INVALID_SCENE_ID"

    def __init__(self, scene_id: str, message: Optional[str] = None):
        super().__init__(message or f"Invalid scene ID: {scene_id!r}", details={"scene_id": scene_id})
        self.scene_id = scene_id


class TransportError(SceneCacheError):
    """Network-level failure reaching the remote service."""

    code = "TRANSPORT_ERROR"
    retriable = True

    def __init__(self, url: str, message: str):
        super().__init__(message, details={"url": url})
        self.url = url


class RemoteError(SceneCacheError):
    """Non-success HTTP response from the remote service."""

    code = "REMOTE_ERROR"

    def __init__(self, status: int, message: str, *, url: str = ""):
        super().__init__(f"HTTP {status}: {message}", details={"status": status, "url": url})
        self.status = status
        self.message = message
        self.url = url

    @property
    def retriable(self) -> bool:  # type: ignore[override]
        return 500 <= self.status < 600


class MalformedResponseError(SceneCacheError):
    code = "MALFORMED_RESPONSE"

    def __init__(self, url: str, message: str):
        super().__init__(message, details={"url": url})
        self.url = url


class CorruptCacheError(SceneCacheError):
    """A cached manifest exists but cannot be deserialized."""

    code = "CORRUPT_CACHE"

    def __init__(self, path: Path, message: str):
        super().__init__(message, details={"path": str(path)})
        self.path = Path(path)


class CacheIOError(SceneCacheError):
    """The cache could not be read or written (permissions, wrong file type, disk full)."""

    code = "CACHE_IO_ERROR"

    def __init__(self, path: Path, message: str):
        super().__init__(message, details={"path": str(path)})
        self.path = Path(path)


class DownloadFailedError(SceneCacheError):
    code = "DOWNLOAD_FAILED"

    def __init__(self, url: str, destination: Path, cause: BaseException | str):
        super().__init__(
            f"Download of {url} failed: {cause}",
            details={"url": url, "destination": str(destination), "cause": str(cause)},
        )
        self.url = url
        self.destination = Path(destination)
        self.cause = cause

    @property
    def retriable(self) -> bool:  # type: ignore[override]
        return bool(getattr(self.cause, "retriable", False))


class DestinationExistsError(SceneCacheError):
    code = "DESTINATION_EXISTS"

    def __init__(self, destination: Path):
        super().__init__(f"Destination already exists: {destination}", details={"destination": str(destination)})
        self.destination = Path(destination)


class ScanNotFoundError(SceneCacheError):
    code = "SCAN_NOT_FOUND"

    def __init__(self, scene_id: str, scan_id: str):
        super().__init__(
            f"Scan {scan_id!r} not found in scene {scene_id!r}",
            details={"scene_id": scene_id, "scan_id": scan_id},
        )
        self.scene_id = scene_id
        self.scan_id = scan_id


class ScanNotDownloadableError(SceneCacheError):
    """Scan is archived or has no download URL."""

    code = "SCAN_NOT_DOWNLOADABLE"

    def __init__(self, scene_id: str, scan_id: str, reason: str):
        super().__init__(
            f"Scan {scan_id!r} in scene {scene_id!r} is not downloadable: {reason}",
            details={"scene_id": scene_id, "scan_id": scan_id, "reason": reason},
        )
        self.scene_id = scene_id
        self.scan_id = scan_id
        self.reason = reason


class BundleDownloadError(SceneCacheError):
    """One or more files of a fan-out download failed."""

    code = "BUNDLE_DOWNLOAD_FAILED"

    def __init__(self, report: "DownloadReport"):
        failed = [failure.url for failure in report.failures]
        super().__init__(
            f"{len(failed)} of {report.attempted} downloads failed for scene {report.scene_id!r}",
            details=report.to_dict(),
        )
        self.report = report


class DownloadCancelledError(SceneCacheError):
    code = "DOWNLOAD_CANCELLED"

    def __init__(self, report: "DownloadReport"):
        super().__init__(f"Downloads for scene {report.scene_id!r} were cancelled", details=report.to_dict())
        self.report = report


def error_response(code: str, message: str, *, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Return a standardised error payload."""
    return ErrorPayload(code, message, details).to_dict()
