"""
Configuration management for scenecache.

Implements hierarchical configuration loading:
1. Defaults (``SceneCacheConfig.DEFAULTS``)
2. JSON config file (explicit path or ``SCENECACHE_CONFIG_FILE``)
3. Environment variables ``SCENECACHE_<KEY>`` (highest priority)

Usage:
    from scenecache.config import load_config

    config = load_config()
    config.cache_root          # Path to the cache base directory
    config.get('chunk_size')
"""

from __future__ import annotations

import json
import logging
import os
import ssl
from pathlib import Path
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)

ENV_PREFIX = 'SCENECACHE_'
CONFIG_FILE_ENV = 'SCENECACHE_CONFIG_FILE'

_TLS_VERSIONS = {
    'TLSv1_2': ssl.TLSVersion.TLSv1_2,
    'TLSv1_3': ssl.TLSVersion.TLSv1_3,
}
_OVERWRITE_POLICIES = ('skip', 'overwrite', 'error')


class SceneCacheConfig:
    """Configuration for the cache, the metadata endpoint and the transfer pool."""

    DEFAULTS: Dict[str, Any] = {
        'api_url': 'https://digitaltwin.devsturfee.com/hd/layout',
        'cache_root': '~/.cache/scenecache',
        'connection_limit': 1000,
        'min_tls_version': 'TLSv1_2',
        'request_timeout': 30.0,
        'download_timeout': 600.0,
        'chunk_size': 65536,
        'max_concurrent_downloads': 16,
        'overwrite_policy': 'overwrite',
        'auth_token': '',
        'auth_secret': '',
        'debug_mode': False,
    }

    def __init__(self, config_file: Optional[Union[str, Path]] = None, **overrides: Any):
        """
        Args:
            config_file: Optional path to a JSON config file. Falls back to
                ``SCENECACHE_CONFIG_FILE`` when omitted.
            **overrides: Runtime values applied after all other sources.
        """
        self._config: Dict[str, Any] = {}
        self._config_file = config_file or os.getenv(CONFIG_FILE_ENV)
        self._overrides = {k: v for k, v in overrides.items() if v is not None}
        self._load_configuration()

    def _load_configuration(self):
        """Load configuration from all sources in priority order."""
        self._config = self.DEFAULTS.copy()
        self._load_from_json_config()
        self._load_from_environment()
        self._config.update(self._overrides)
        self._validate_config()

        if self.debug_mode:
            logger.info(f"scenecache configuration loaded: {self!r}")

    def _load_from_json_config(self):
        if not self._config_file:
            return

        config_path = Path(self._config_file).expanduser()
        if not config_path.exists():
            logger.warning(f"Config file not found: {config_path}")
            return

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                json_config = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Failed to load JSON config from {config_path}: {e}")
            return

        if not isinstance(json_config, dict):
            logger.warning(f"Ignoring config file {config_path}: top level must be an object")
            return

        # Filter out comment keys (starting with _)
        self._config.update({k: v for k, v in json_config.items() if not k.startswith('_')})
        logger.debug(f"Loaded JSON config from {config_path}")

    def _load_from_environment(self):
        for key in self.DEFAULTS:
            env_key = f"{ENV_PREFIX}{key.upper()}"
            env_value = os.getenv(env_key)
            if env_value is not None:
                self._config[key] = self._convert_env_value(env_value, self.DEFAULTS[key])
                logger.debug(f"Loaded environment variable: {env_key}")

    def _convert_env_value(self, env_value: str, default_value: Any) -> Any:
        """Convert environment variable string to the type of the default."""
        if isinstance(default_value, bool):
            return env_value.lower() in ('true', '1', 'yes', 'on')
        elif isinstance(default_value, int):
            try:
                return int(env_value)
            except ValueError:
                logger.warning(f"Invalid integer value in environment: {env_value}")
                return default_value
        elif isinstance(default_value, float):
            try:
                return float(env_value)
            except ValueError:
                logger.warning(f"Invalid float value in environment: {env_value}")
                return default_value
        return env_value

    def _validate_config(self):
        for key in ('connection_limit', 'chunk_size', 'max_concurrent_downloads'):
            value = self._config.get(key)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                logger.warning(f"Invalid {key} {value!r}, using {self.DEFAULTS[key]}")
                self._config[key] = self.DEFAULTS[key]

        for key in ('request_timeout', 'download_timeout'):
            value = self._config.get(key)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
                logger.warning(f"Invalid {key} {value!r}, using {self.DEFAULTS[key]}")
                self._config[key] = self.DEFAULTS[key]

        if self._config.get('min_tls_version') not in _TLS_VERSIONS:
            logger.warning(f"Unsupported TLS version {self._config.get('min_tls_version')!r}, using TLSv1_2")
            self._config['min_tls_version'] = 'TLSv1_2'

        policy = str(self._config.get('overwrite_policy', '')).lower()
        if policy not in _OVERWRITE_POLICIES:
            logger.warning(f"Unknown overwrite policy {policy!r}, using 'overwrite'")
            policy = 'overwrite'
        self._config['overwrite_policy'] = policy

        self._config['api_url'] = str(self._config.get('api_url') or self.DEFAULTS['api_url']).rstrip('/')

    def get(self, key: str, default: Any = None) -> Any:
        return self._config.get(key, default)

    def set(self, key: str, value: Any):
        """Set configuration value (runtime only)."""
        self._config[key] = value

    def get_all(self) -> Dict[str, Any]:
        return self._config.copy()

    def reload(self):
        self._load_configuration()

    @property
    def api_url(self) -> str:
        return self._config['api_url']

    @property
    def cache_root(self) -> Path:
        return Path(str(self._config['cache_root'])).expanduser()

    @property
    def connection_limit(self) -> int:
        return self._config['connection_limit']

    @property
    def min_tls_version(self) -> ssl.TLSVersion:
        return _TLS_VERSIONS[self._config['min_tls_version']]

    @property
    def request_timeout(self) -> float:
        return float(self._config['request_timeout'])

    @property
    def download_timeout(self) -> float:
        return float(self._config['download_timeout'])

    @property
    def chunk_size(self) -> int:
        return self._config['chunk_size']

    @property
    def max_concurrent_downloads(self) -> int:
        return self._config['max_concurrent_downloads']

    @property
    def overwrite_policy(self) -> str:
        return self._config['overwrite_policy']

    @property
    def auth_token(self) -> str:
        return self._config.get('auth_token') or ''

    @property
    def auth_secret(self) -> str:
        return self._config.get('auth_secret') or ''

    @property
    def debug_mode(self) -> bool:
        return bool(self._config.get('debug_mode', False))

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {len(self._config)} settings, cache_root={self.cache_root}>"


def load_config(config_file: Optional[Union[str, Path]] = None, **overrides: Any) -> SceneCacheConfig:
    """Create a configuration instance from defaults, file, environment and overrides."""
    return SceneCacheConfig(config_file, **overrides)
