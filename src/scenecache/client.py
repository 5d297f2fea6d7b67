"""
HTTP client for the scene metadata endpoint.

    GET {api_url}/{scene_id}?full_details=true  ->  JSON manifest

Handles:
- Shared connection pool with a minimum TLS version
- Pluggable request authentication
- Mapping transport, status and parse failures onto scenecache errors
"""

import asyncio
import json
import logging
import ssl
from typing import Any, Dict, Optional
from urllib.parse import quote

import aiohttp
from pydantic import ValidationError

from .auth import AuthProvider
from .config import SceneCacheConfig
from .errors import MalformedResponseError, RemoteError, TransportError
from .layout import validate_scene_id
from .models import Manifest

logger = logging.getLogger(__name__)

_MAX_ERROR_TEXT = 500


def build_session(config: SceneCacheConfig) -> aiohttp.ClientSession:
    """Create the process-wide client session from network tuning settings.

    Must be called from a running event loop.
    """
    ssl_context = ssl.create_default_context()
    ssl_context.minimum_version = config.min_tls_version
    connector = aiohttp.TCPConnector(limit=config.connection_limit, ssl=ssl_context)
    return aiohttp.ClientSession(connector=connector)


class RemoteMetadataClient:
    """
    Fetches scene manifests from the remote service.

    The client can own its session (created on ``initialize``) or borrow one
    passed in by the caller; only an owned session is closed by ``close``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        auth: Optional[AuthProvider] = None,
        timeout: float = 30.0,
        config: Optional[SceneCacheConfig] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self._auth = auth
        self._timeout = timeout
        self._config = config
        self._session = session
        self._owns_session = session is None

    async def initialize(self):
        if self._session is None:
            self._session = build_session(self._config) if self._config else aiohttp.ClientSession()
            self._owns_session = True

    async def close(self):
        if self._session and self._owns_session:
            await self._session.close()
            self._session = None

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def manifest_url(self, scene_id: str) -> str:
        return f"{self.base_url}/{quote(scene_id, safe='')}"

    def _build_headers(self, method: str, url: str) -> Dict[str, str]:
        headers = {'Accept': 'application/json', 'Content-Type': 'application/json; charset=utf-8'}
        if self._auth is not None:
            headers.update(self._auth.headers(method, url))
        return headers

    async def fetch(self, scene_id: str) -> Optional[Manifest]:
        """
        Fetch the full manifest for ``scene_id``.

        Returns:
            The manifest, or ``None`` when the service answers with a JSON null.

        Raises:
            TransportError: the service could not be reached
            RemoteError: the service answered with a non-200 status
            MalformedResponseError: the body is not a valid manifest
        """
        validate_scene_id(scene_id)
        await self.initialize()

        url = self.manifest_url(scene_id)
        headers = self._build_headers('GET', url)
        logger.info(f"Fetching scene metadata => {url}")

        try:
            async with self._session.get(
                url,
                params={'full_details': 'true'},
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            ) as response:
                if response.status != 200:
                    text = await response.text(errors='replace')
                    message = text.strip()[:_MAX_ERROR_TEXT] or (response.reason or '')
                    logger.error(f"Metadata request for {scene_id} failed: {response.status} - {message}")
                    raise RemoteError(response.status, message, url=url)
                raw = await response.read()
        except asyncio.TimeoutError as e:
            raise TransportError(url, f"Timed out after {self._timeout}s fetching metadata for {scene_id}") from e
        except aiohttp.ClientError as e:
            raise TransportError(url, f"Error fetching metadata for {scene_id}: {e}") from e

        return self._parse_manifest(scene_id, url, raw)

    def _parse_manifest(self, scene_id: str, url: str, raw: bytes) -> Optional[Manifest]:
        try:
            data: Any = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MalformedResponseError(url, f"Metadata for {scene_id} is not valid JSON: {e}") from e

        if data is None:
            return None
        if not isinstance(data, dict):
            raise MalformedResponseError(url, f"Metadata for {scene_id} is a {type(data).__name__}, expected an object")

        # Responses may omit the ID they were requested by
        if not any(str(key).lower() == 'dthdid' for key in data):
            data['DtHdId'] = scene_id

        try:
            manifest = Manifest.model_validate(data)
        except ValidationError as e:
            raise MalformedResponseError(url, f"Metadata for {scene_id} does not match the manifest schema: {e}") from e

        if manifest.scene_id != scene_id:
            raise MalformedResponseError(
                url, f"Requested scene {scene_id!r} but the service returned {manifest.scene_id!r}"
            )
        return manifest
