"""
Command line interface for the scene cache.

    scenecache resolve <scene_id> [--refresh]
    scenecache download <scene_id> [--scans] [--policy skip|overwrite|error]
    scenecache download-scan <scene_id> <scan_id>
    scenecache status <scene_id> [--remote]
    scenecache erase <scene_id>

Results are printed as JSON on stdout. Failures print the structured error
payload and exit with status 1.
"""

import asyncio
import json
import os
from typing import Any, Awaitable, Callable, Dict

import click

from .config import SceneCacheConfig, load_config
from .errors import SceneCacheError, error_response
from .logging import get_logger, setup_logging
from .provider import SceneDataProvider

logger = get_logger(__name__, service='scenecache-cli')

_POLICIES = click.Choice(['skip', 'overwrite', 'error'], case_sensitive=False)


def _emit(payload: Dict[str, Any]) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


def _fail(ctx: click.Context, error: Exception) -> None:
    if isinstance(error, SceneCacheError):
        payload = error.to_payload()
    else:
        payload = error_response('IO_ERROR', str(error), details={'type': type(error).__name__})
    logger.debug(f"Command failed: {payload['error_code']} {payload['error']}")
    _emit(payload)
    ctx.exit(1)


def _run(ctx: click.Context, operation: Callable[[SceneDataProvider], Awaitable[Dict[str, Any]]]) -> None:
    config: SceneCacheConfig = ctx.obj

    async def runner() -> Dict[str, Any]:
        async with SceneDataProvider(config) as provider:
            return await operation(provider)

    try:
        payload = asyncio.run(runner())
    except (SceneCacheError, OSError) as e:
        _fail(ctx, e)
        return
    _emit(payload)


@click.group()
@click.option('--config', 'config_file', type=click.Path(dir_okay=False), default=None,
              help='JSON configuration file.')
@click.option('--cache-root', type=click.Path(file_okay=False), default=None,
              help='Base cache directory.')
@click.option('--api-url', default=None, help='Scene metadata endpoint.')
@click.option('--log-level', default=None,
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False))
@click.option('--json-logs', is_flag=True, default=False, help='Emit logs as JSON lines.')
@click.pass_context
def main(ctx, config_file, cache_root, api_url, log_level, json_logs):
    """Fetch, cache and inspect 3D scene bundles."""
    setup_logging(
        'scenecache-cli',
        level=log_level or os.getenv('SCENECACHE_LOG_LEVEL') or 'WARNING',
        json_format=True if json_logs else None,
    )
    ctx.obj = load_config(config_file, cache_root=cache_root, api_url=api_url)


@main.command()
@click.argument('scene_id')
@click.option('--refresh', is_flag=True, help='Ignore the cached manifest and fetch from the service.')
@click.pass_context
def resolve(ctx, scene_id, refresh):
    """Print the manifest for SCENE_ID."""

    async def operation(provider: SceneDataProvider) -> Dict[str, Any]:
        handle = await provider.resolve_handle(scene_id, force_refresh=refresh)
        return {
            'success': True,
            'scene_id': scene_id,
            'manifest_path': str(handle.manifest_path),
            'manifest': handle.manifest.model_dump(mode='json', by_alias=True),
        }

    _run(ctx, operation)


@main.command()
@click.argument('scene_id')
@click.option('--scans', is_flag=True, help='Also download every downloadable scan mesh.')
@click.option('--policy', type=_POLICIES, default=None, help='Behaviour for files already cached.')
@click.option('--refresh', is_flag=True, help='Refetch the manifest first.')
@click.pass_context
def download(ctx, scene_id, scans, policy, refresh):
    """Download the bundle (enhanced mesh, assets, environment) for SCENE_ID."""

    async def operation(provider: SceneDataProvider) -> Dict[str, Any]:
        manifest = await provider.resolve(scene_id, force_refresh=refresh)
        payload: Dict[str, Any] = {'success': True, 'scene_id': scene_id}
        bundle = await provider.orchestrator.download_bundle(scene_id, manifest, policy=policy)
        payload['bundle'] = bundle.to_dict()
        if scans:
            scan_report = await provider.orchestrator.download_all_scans(scene_id, manifest, policy=policy)
            payload['scans'] = scan_report.to_dict()
        return payload

    _run(ctx, operation)


@main.command('download-scan')
@click.argument('scene_id')
@click.argument('scan_id')
@click.option('--policy', type=_POLICIES, default=None, help='Behaviour if the scan is already cached.')
@click.pass_context
def download_scan(ctx, scene_id, scan_id, policy):
    """Download a single scan mesh."""

    async def operation(provider: SceneDataProvider) -> Dict[str, Any]:
        result = await provider.download_scan_mesh(scene_id, scan_id, policy=policy)
        return {'success': True, 'scene_id': scene_id, 'result': result.to_dict()}

    _run(ctx, operation)


@main.command()
@click.argument('scene_id')
@click.option('--remote', is_flag=True, help='Also reconcile scans against the service.')
@click.pass_context
def status(ctx, scene_id, remote):
    """Report which parts of SCENE_ID are cached."""

    async def operation(provider: SceneDataProvider) -> Dict[str, Any]:
        manifest_cached = await provider.store.exists(scene_id)
        payload: Dict[str, Any] = {
            'success': True,
            'scene_id': scene_id,
            'cached': provider.is_cached(scene_id),
            'manifest_cached': manifest_cached,
            'all_scans_cached_local': await provider.are_all_scans_cached_local(scene_id),
        }
        if manifest_cached or remote:
            payload['enhanced_mesh_cached'] = await provider.is_enhanced_mesh_cached(scene_id)
        if remote:
            payload['all_scans_cached_remote'] = await provider.are_all_scans_cached_remote(scene_id)
        return payload

    _run(ctx, operation)


@main.command()
@click.argument('scene_id')
@click.pass_context
def erase(ctx, scene_id):
    """Delete everything cached for SCENE_ID."""
    config: SceneCacheConfig = ctx.obj
    provider = SceneDataProvider(config)
    try:
        deleted = provider.delete_cached_data(scene_id)
    except (SceneCacheError, OSError) as e:
        _fail(ctx, e)
        return
    _emit({'success': True, 'scene_id': scene_id, 'deleted': deleted})


if __name__ == '__main__':  # pragma: no cover
    main()
