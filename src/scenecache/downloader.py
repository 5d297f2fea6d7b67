"""
Concurrent materialisation of scene bundle files.

Every orchestration call fans out one transfer per file and waits for all of
them. A failing transfer never cancels its siblings; failures are collected
into a ``DownloadReport`` and surfaced once every transfer has finished.

Each transfer streams into ``<destination>.part`` and renames it over the
destination on success. On any failure or cancellation the ``.part`` file is
removed, so the cache never holds truncated artifacts.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import aiofiles
import aiofiles.os
import aiohttp

from .config import SceneCacheConfig
from .errors import (
    BundleDownloadError,
    DestinationExistsError,
    DownloadCancelledError,
    DownloadFailedError,
    InvalidSceneIDError,
    RemoteError,
    ScanNotDownloadableError,
    ScanNotFoundError,
    TransportError,
)
from .layout import DirectoryLayout, SceneLayout
from .locks import SceneLocks
from .models import Manifest
from .store import ManifestStore

logger = logging.getLogger(__name__)

PART_SUFFIX = '.part'


class OverwritePolicy(str, Enum):
    """What a transfer does when its destination already exists."""

    SKIP = 'skip'
    OVERWRITE = 'overwrite'
    ERROR = 'error'


class DownloadStatus(str, Enum):
    DOWNLOADED = 'downloaded'
    SKIPPED = 'skipped'


@dataclass(frozen=True)
class DownloadTarget:
    kind: str
    item_id: str
    url: str
    destination: Path


@dataclass
class DownloadResult:
    kind: str
    item_id: str
    url: str
    destination: Path
    status: DownloadStatus
    bytes_written: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'id': self.item_id,
            'url': self.url,
            'destination': str(self.destination),
            'status': self.status.value,
            'bytes_written': self.bytes_written,
        }


@dataclass
class DownloadReport:
    """Outcome of one fan-out: per-file results plus per-file failures."""

    scene_id: str
    results: List[DownloadResult] = field(default_factory=list)
    failures: List[DownloadFailedError] = field(default_factory=list)
    cancelled: bool = False

    @property
    def succeeded(self) -> bool:
        return not self.failures and not self.cancelled

    @property
    def attempted(self) -> int:
        return len(self.failures) + sum(1 for r in self.results if r.status is DownloadStatus.DOWNLOADED)

    @property
    def downloaded(self) -> List[DownloadResult]:
        return [r for r in self.results if r.status is DownloadStatus.DOWNLOADED]

    @property
    def skipped(self) -> List[DownloadResult]:
        return [r for r in self.results if r.status is DownloadStatus.SKIPPED]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'scene_id': self.scene_id,
            'success': self.succeeded,
            'cancelled': self.cancelled,
            'results': [r.to_dict() for r in self.results],
            'failures': [f.details for f in self.failures],
        }


class _TransferCancelled(Exception):
    """Raised inside a transfer when the caller's cancel event is set."""


def _discard(path: Path) -> None:
    with contextlib.suppress(FileNotFoundError):
        os.remove(path)


def _describe_failure(url: str, exc: Exception) -> Exception:
    if isinstance(exc, asyncio.TimeoutError):
        return TransportError(url, 'transfer timed out')
    if isinstance(exc, aiohttp.ClientError):
        return TransportError(url, str(exc) or type(exc).__name__)
    return exc


class DownloadOrchestrator:
    """Fans out file transfers for a scene and fans their outcomes back in."""

    def __init__(
        self,
        layout: DirectoryLayout,
        store: ManifestStore,
        session: aiohttp.ClientSession,
        *,
        chunk_size: int = 65536,
        timeout: float = 600.0,
        max_concurrency: int = 16,
        overwrite_policy: Union[OverwritePolicy, str] = OverwritePolicy.OVERWRITE,
    ):
        self._layout = layout
        self._store = store
        self._session = session
        self._chunk_size = chunk_size
        self._timeout = timeout
        self._max_concurrency = max_concurrency
        self._default_policy = OverwritePolicy(overwrite_policy)
        self._scene_locks = SceneLocks()

    @classmethod
    def from_config(
        cls,
        config: SceneCacheConfig,
        layout: DirectoryLayout,
        store: ManifestStore,
        session: aiohttp.ClientSession,
    ) -> 'DownloadOrchestrator':
        return cls(
            layout,
            store,
            session,
            chunk_size=config.chunk_size,
            timeout=config.download_timeout,
            max_concurrency=config.max_concurrent_downloads,
            overwrite_policy=config.overwrite_policy,
        )

    # ------------------------------------------------------------------
    async def download_bundle(
        self,
        scene_id: str,
        manifest: Manifest,
        *,
        policy: Optional[Union[OverwritePolicy, str]] = None,
        cancel: Optional[asyncio.Event] = None,
        raise_on_failure: bool = True,
    ) -> DownloadReport:
        """Download the enhanced mesh, every asset and the environment file."""
        self._check_manifest(scene_id, manifest)
        async with self._scene_locks.hold(scene_id):
            layout = await self._prepare(scene_id, manifest)

            candidates = [DownloadTarget('enhanced_mesh', scene_id, manifest.enhanced_mesh or '', layout.enhanced_mesh_path)]
            candidates.extend(
                DownloadTarget('asset', asset.asset_id, asset.file_url, layout.asset_path(asset.asset_id))
                for asset in manifest.assets
            )
            candidates.append(
                DownloadTarget('environment', scene_id, manifest.environment_url or '', layout.environment_path)
            )

            report = DownloadReport(scene_id)
            targets = []
            for target in candidates:
                if target.url:
                    targets.append(target)
                else:
                    logger.debug(f"No URL for {target.kind} {target.item_id} in scene {scene_id}, skipping")
                    report.results.append(
                        DownloadResult(target.kind, target.item_id, '', target.destination, DownloadStatus.SKIPPED)
                    )

            await self._fan_out(report, targets, self._policy(policy), cancel)

        return self._finish(report, raise_on_failure)

    async def download_all_scans(
        self,
        scene_id: str,
        manifest: Manifest,
        *,
        policy: Optional[Union[OverwritePolicy, str]] = None,
        cancel: Optional[asyncio.Event] = None,
        raise_on_failure: bool = True,
    ) -> DownloadReport:
        """Download every scan mesh that has a URL and is not archived."""
        self._check_manifest(scene_id, manifest)
        async with self._scene_locks.hold(scene_id):
            layout = await self._prepare(scene_id, manifest)

            scans = manifest.downloadable_scans()
            excluded = len(manifest.scan_meshes) - len(scans)
            if excluded:
                logger.info(f"Excluding {excluded} archived or URL-less scans of scene {scene_id}")

            targets = [
                DownloadTarget('scan', scan.scan_id, scan.scan_mesh_url, layout.scan_path(scan.scan_id))
                for scan in scans
            ]
            report = DownloadReport(scene_id)
            await self._fan_out(report, targets, self._policy(policy), cancel)

        return self._finish(report, raise_on_failure)

    async def download_scan(
        self,
        scene_id: str,
        manifest: Manifest,
        scan_id: str,
        *,
        policy: Optional[Union[OverwritePolicy, str]] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> DownloadResult:
        """Download a single scan mesh.

        Raises:
            ScanNotFoundError: no scan with ``scan_id`` in the manifest
            ScanNotDownloadableError: the scan is archived or has no URL
            DownloadFailedError: the transfer failed
            DownloadCancelledError: ``cancel`` was set during the transfer
        """
        self._check_manifest(scene_id, manifest)
        scan = manifest.find_scan(scan_id)
        if scan is None:
            raise ScanNotFoundError(scene_id, scan_id)
        if scan.is_archived:
            raise ScanNotDownloadableError(scene_id, scan_id, 'archived')
        if not scan.scan_mesh_url:
            raise ScanNotDownloadableError(scene_id, scan_id, 'no download URL')

        async with self._scene_locks.hold(scene_id):
            layout = await self._prepare(scene_id, manifest)
            target = DownloadTarget('scan', scan_id, scan.scan_mesh_url, layout.scan_path(scan_id))
            report = DownloadReport(scene_id)
            await self._fan_out(report, [target], self._policy(policy), cancel)

        if report.cancelled:
            raise DownloadCancelledError(report)
        if report.failures:
            raise report.failures[0]
        return report.results[0]

    # ------------------------------------------------------------------
    def _policy(self, policy: Optional[Union[OverwritePolicy, str]]) -> OverwritePolicy:
        return self._default_policy if policy is None else OverwritePolicy(policy)

    @staticmethod
    def _check_manifest(scene_id: str, manifest: Manifest) -> None:
        if manifest.scene_id != scene_id:
            raise InvalidSceneIDError(
                scene_id, f"Manifest for scene {manifest.scene_id!r} cannot materialise scene {scene_id!r}"
            )

    async def _prepare(self, scene_id: str, manifest: Manifest) -> SceneLayout:
        """Ensure directories exist and the manifest is on disk before any transfer."""
        layout = self._layout.layout_for(scene_id)
        if not await self._store.exists(scene_id):
            await self._store.save(scene_id, manifest)
        return layout

    async def _fan_out(
        self,
        report: DownloadReport,
        targets: List[DownloadTarget],
        policy: OverwritePolicy,
        cancel: Optional[asyncio.Event],
    ) -> None:
        if not targets:
            return

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def run(target: DownloadTarget) -> DownloadResult:
            async with semaphore:
                return await self._transfer(target, policy, cancel)

        logger.info(f"Downloading {len(targets)} files for scene {report.scene_id}")
        outcomes = await asyncio.gather(*(run(target) for target in targets), return_exceptions=True)

        for target, outcome in zip(targets, outcomes):
            if isinstance(outcome, DownloadResult):
                report.results.append(outcome)
            elif isinstance(outcome, DownloadFailedError):
                report.failures.append(outcome)
            elif isinstance(outcome, (_TransferCancelled, asyncio.CancelledError)):
                report.cancelled = True
            elif isinstance(outcome, Exception):
                report.failures.append(DownloadFailedError(target.url, target.destination, outcome))
            else:
                raise outcome

        for failure in report.failures:
            logger.warning(f"Scene {report.scene_id}: {failure.message}")

    async def _transfer(
        self,
        target: DownloadTarget,
        policy: OverwritePolicy,
        cancel: Optional[asyncio.Event],
    ) -> DownloadResult:
        destination = target.destination

        if destination.exists():
            if policy is OverwritePolicy.SKIP:
                logger.debug(f"{destination} already cached, skipping")
                return DownloadResult(target.kind, target.item_id, target.url, destination, DownloadStatus.SKIPPED)
            if policy is OverwritePolicy.ERROR:
                raise DownloadFailedError(target.url, destination, DestinationExistsError(destination))

        part_path = destination.with_name(destination.name + PART_SUFFIX)
        written = 0
        try:
            if cancel is not None and cancel.is_set():
                raise _TransferCancelled()

            async with self._session.get(
                target.url,
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            ) as response:
                if not 200 <= response.status < 300:
                    raise RemoteError(response.status, response.reason or '', url=target.url)

                async with aiofiles.open(part_path, 'wb') as f:
                    async for chunk in response.content.iter_chunked(self._chunk_size):
                        if cancel is not None and cancel.is_set():
                            raise _TransferCancelled()
                        await f.write(chunk)
                        written += len(chunk)

            await aiofiles.os.replace(part_path, destination)
        except BaseException as exc:
            _discard(part_path)
            if isinstance(exc, (_TransferCancelled, asyncio.CancelledError)) or not isinstance(exc, Exception):
                logger.info(f"Transfer of {target.url} cancelled")
                raise
            raise DownloadFailedError(target.url, destination, _describe_failure(target.url, exc)) from exc

        logger.info(f"Downloaded {target.kind} {target.item_id} ({written} bytes) -> {destination}")
        return DownloadResult(
            target.kind, target.item_id, target.url, destination, DownloadStatus.DOWNLOADED, bytes_written=written
        )

    @staticmethod
    def _finish(report: DownloadReport, raise_on_failure: bool) -> DownloadReport:
        if report.cancelled:
            raise DownloadCancelledError(report)
        if report.failures and raise_on_failure:
            raise BundleDownloadError(report)
        return report
