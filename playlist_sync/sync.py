#!/usr/bin/env python3
"""Playlist Sync - command line entry point"""

import logging
import sys
import threading

import click

from playlist_sync.clients.base import ProviderAdapter
from playlist_sync.clients.browser_login import BrowserLogin
from playlist_sync.clients.deezer import DeezerAdapter
from playlist_sync.clients.fixture import FixedCatalogAdapter, demo_catalog
from playlist_sync.clients.spotify import SpotifyAdapter
from playlist_sync.config import Config, load_config
from playlist_sync.core.models import OutcomeKind, Playlist, ProviderError, SyncResult
from playlist_sync.core.registry import ProviderRegistry
from playlist_sync.core.status import write_running_status, write_status
from playlist_sync.core.sync_engine import SyncEngine, SyncJob
from playlist_sync.core.token_store import TokenStore, parse_redirect, token_from_redirect

logger = logging.getLogger(__name__)


def setup_logging(config: Config) -> None:
    level = getattr(logging, config.log_level, logging.INFO)
    config.data_dir.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.FileHandler(config.log_file, encoding="utf-8"),
            logging.StreamHandler()
        ]
    )


def build_adapters(config: Config) -> list[ProviderAdapter]:
    if config.local:
        return [
            FixedCatalogAdapter(name, catalog=demo_catalog(name), fuzzy=config.fuzzy_match)
            for name in config.configured_providers()
        ]

    login = BrowserLogin(config.redirect_uri, chromium_path=config.chromium_path)
    adapters: list[ProviderAdapter] = []
    if config.spotify_client_id:
        adapters.append(SpotifyAdapter(config.spotify_client_id, login, fuzzy=config.fuzzy_match))
    if config.deezer_app_id:
        adapters.append(DeezerAdapter(config.deezer_app_id, login, fuzzy=config.fuzzy_match))
    return adapters


def build_registry(config: Config) -> ProviderRegistry:
    registry = ProviderRegistry(build_adapters(config), TokenStore(config.token_file))
    registry.restore()
    return registry


def build_engine(config: Config, registry: ProviderRegistry, on_progress=None) -> SyncEngine:
    return SyncEngine(
        registry,
        call_timeout=config.call_timeout,
        max_retries=config.max_retries,
        retry_backoff=config.retry_backoff,
        transfer_mode=config.transfer_mode,
        on_progress=on_progress,
    )


def _registry(ctx: click.Context) -> ProviderRegistry:
    if "registry" not in ctx.meta:
        ctx.meta["registry"] = build_registry(ctx.obj)
    return ctx.meta["registry"]


def _provider(registry: ProviderRegistry, name: str) -> str:
    for provider in registry.providers:
        if provider.lower() == name.lower():
            return provider
    known = ", ".join(registry.providers) or "none"
    raise click.BadParameter(f"unknown or unconfigured provider '{name}' (configured: {known})")


def _require_connected(registry: ProviderRegistry, provider: str) -> None:
    if not registry.is_connected(provider):
        raise click.ClickException(f"{provider} is not connected, run 'connect {provider}' first")


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Move playlists between Spotify and Deezer."""
    config = load_config()
    setup_logging(config)
    ctx.obj = config


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the connection state of every configured provider."""
    registry = _registry(ctx)
    if not registry.providers:
        click.echo("No provider configured (set SPOTIFY_CLIENT_ID / DEEZER_APP_ID)")
        return
    for provider in registry.providers:
        conn = registry.connection(provider)
        click.echo(f"{provider}: {conn.status.value}")


@cli.command()
@click.argument("provider")
@click.pass_context
def connect(ctx: click.Context, provider: str) -> None:
    """Log in to PROVIDER."""
    registry = _registry(ctx)
    provider = _provider(registry, provider)
    conn = registry.connect(provider)
    if not conn.connected:
        raise click.ClickException(f"{provider} login failed: {conn.last_error}")
    click.echo(f"{provider}: connected")


@cli.command()
@click.argument("provider")
@click.pass_context
def disconnect(ctx: click.Context, provider: str) -> None:
    """Log out of PROVIDER and forget its token."""
    registry = _registry(ctx)
    provider = _provider(registry, provider)
    registry.disconnect(provider)
    click.echo(f"{provider}: disconnected")


@cli.command(name="login-url")
@click.argument("provider")
@click.pass_context
def login_url(ctx: click.Context, provider: str) -> None:
    """Print the consent URL for PROVIDER (for use with 'capture')."""
    registry = _registry(ctx)
    adapter = registry.adapter(_provider(registry, provider))
    if not hasattr(adapter, "authorize_url"):
        raise click.ClickException(f"{adapter.name} has no login page")
    click.echo(adapter.authorize_url())


@cli.command()
@click.argument("redirect_url")
@click.pass_context
def capture(ctx: click.Context, redirect_url: str) -> None:
    """Store the token carried by REDIRECT_URL."""
    search, fragment = parse_redirect(redirect_url)
    token = token_from_redirect(search, fragment)
    if token is None:
        raise click.ClickException("No token found in the redirect URL")
    TokenStore(ctx.obj.token_file).capture_from_redirect(search, fragment)
    click.echo(f"Stored token for {token.provider}")


@cli.command()
@click.argument("provider")
@click.pass_context
def playlists(ctx: click.Context, provider: str) -> None:
    """List the playlists of PROVIDER."""
    registry = _registry(ctx)
    provider = _provider(registry, provider)
    _require_connected(registry, provider)
    try:
        found = registry.adapter(provider).list_playlists()
    except ProviderError as e:
        raise click.ClickException(f"Could not load playlists: {e.reason}")
    if not found:
        click.echo("No playlists")
        return
    for playlist in found:
        click.echo(f"{playlist.external_id}\t{playlist.title} ({playlist.track_count} tracks)")


@cli.command()
@click.argument("provider")
@click.argument("playlist_id")
@click.pass_context
def songs(ctx: click.Context, provider: str, playlist_id: str) -> None:
    """List the songs of a PROVIDER playlist."""
    registry = _registry(ctx)
    provider = _provider(registry, provider)
    _require_connected(registry, provider)
    try:
        found = registry.adapter(provider).list_songs(playlist_id)
    except ProviderError as e:
        raise click.ClickException(f"Could not load songs: {e.reason}")
    if not found:
        click.echo("No songs")
        return
    for song in found:
        click.echo(f"{song.title} - {song.artist}")


def _find_playlist(registry: ProviderRegistry, provider: str, playlist_id: str) -> Playlist:
    try:
        for playlist in registry.adapter(provider).list_playlists() or []:
            if playlist.external_id == playlist_id:
                return playlist
    except ProviderError as e:
        logger.warning(f"Could not look up playlist title: {e}")
    return Playlist(provider=provider, external_id=playlist_id, title=playlist_id)


def _run_interruptible(engine: SyncEngine, job: SyncJob) -> SyncResult:
    outcome = {}

    def work():
        try:
            outcome["result"] = engine.run(job)
        except Exception as e:
            outcome["error"] = e

    worker = threading.Thread(target=work, daemon=True)
    worker.start()
    while worker.is_alive():
        try:
            worker.join(0.2)
        except KeyboardInterrupt:
            if job.cancel():
                click.echo("Cancelling...")
            else:
                click.echo("Transfer in progress, it will finish first")
    if "error" in outcome:
        raise outcome["error"]
    return outcome["result"]


def _print_result(result: SyncResult, job: SyncJob) -> None:
    if not result.success:
        click.echo(f"Sync failed: {result.reason}")
        return
    for summary in result.targets:
        click.echo(f"{summary.provider}: {summary.succeeded} transferred, "
                   f"{summary.unmatched} unmatched, {summary.errors} errors")
    for song, outcomes in job.per_song_results():
        marks = []
        for target, outcome in outcomes.items():
            mark = outcome.kind.value if outcome else "pending"
            if outcome and outcome.kind is OutcomeKind.ERROR:
                mark = f"error ({outcome.reason})"
            marks.append(f"{target}: {mark}")
        click.echo(f"  {song.label}: {'; '.join(marks)}")


@cli.command(name="sync")
@click.argument("provider")
@click.argument("playlist_id")
@click.option("--to", "targets", multiple=True, required=True, help="Target provider (repeatable)")
@click.pass_context
def sync_playlist(ctx: click.Context, provider: str, playlist_id: str, targets: tuple[str, ...]) -> None:
    """Copy a PROVIDER playlist into the --to providers."""
    config: Config = ctx.obj
    registry = _registry(ctx)
    provider = _provider(registry, provider)
    _require_connected(registry, provider)
    registry.select(provider)
    for target in targets:
        target = _provider(registry, target)
        try:
            registry.add_compare(target)
        except ValueError as e:
            raise click.ClickException(str(e))

    engine = build_engine(config, registry)
    source = _find_playlist(registry, provider, playlist_id)
    job = engine.create_job(source, registry.compare_providers)
    write_running_status(job, config.status_file)

    result = _run_interruptible(engine, job)
    write_status(result, job, config.status_file)
    _print_result(result, job)
    if not result.success:
        ctx.exit(1)


def main() -> int:
    try:
        rv = cli(standalone_mode=False)
    except click.ClickException as e:
        e.show()
        return 1 if not isinstance(e, click.UsageError) else 2
    except click.Abort:
        return 1
    return rv if isinstance(rv, int) else 0


if __name__ == "__main__":
    sys.exit(main())
