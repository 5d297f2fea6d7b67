"""
Request authentication hooks for the metadata endpoint.

The metadata client asks its ``AuthProvider`` for extra headers while it
builds each request. No provider means unauthenticated requests.
"""

import hashlib
import hmac
import logging
import time
from typing import Dict, Optional
from urllib.parse import urlparse

from typing_extensions import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class AuthProvider(Protocol):
    def headers(self, method: str, url: str) -> Dict[str, str]:
        """Return headers to add to a request for ``method`` ``url``."""
        ...


class BearerTokenAuth:
    """Static ``Authorization: Bearer <token>`` header."""

    def __init__(self, token: str):
        self._token = token

    def headers(self, method: str, url: str) -> Dict[str, str]:
        if not self._token:
            return {}
        return {'Authorization': f'Bearer {self._token}'}


class HMACAuth:
    """
    HMAC-SHA256 request signing.

    Signs ``"METHOD|PATH|TIMESTAMP"`` with the shared secret and sends the
    result in ``X-Signature`` alongside ``X-Timestamp``.
    """

    def __init__(self, secret: str, token: Optional[str] = None):
        self._secret = secret
        self._token = token

    def headers(self, method: str, url: str) -> Dict[str, str]:
        if not self._secret:
            logger.error("Missing HMAC secret, sending request unsigned")
            return {}

        timestamp = str(time.time())
        signature = self.sign(method, url, timestamp)

        headers = {
            'X-Timestamp': timestamp,
            'X-Signature': signature,
        }
        if self._token:
            headers['X-Auth-Token'] = self._token
        return headers

    def sign(self, method: str, url: str, timestamp: str) -> str:
        path = urlparse(url).path
        string_to_sign = f"{method.upper()}|{path}|{timestamp}"
        return hmac.new(
            self._secret.encode('utf-8'),
            string_to_sign.encode('utf-8'),
            hashlib.sha256,
        ).hexdigest()
