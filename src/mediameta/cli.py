"""Command-line interface for media metadata lookups."""

import asyncio
import json
import sys
from pathlib import Path

import click

from mediameta import __version__
from mediameta.config import load_config
from mediameta.errors import MetadataError
from mediameta.metadata.batch import BatchProcessor
from mediameta.metadata.cache import MetadataCache
from mediameta.metadata.resolver import MetadataResolver
from mediameta.models.book import BookSource
from mediameta.utils.logger import get_logger, setup_logging


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


def _run_lookup(config, media_type: str, query: dict) -> None:
    """Run one lookup and print the record, or the error with exit code 1."""

    async def _lookup():
        async with MetadataResolver.from_config(config) as resolver:
            return await resolver.lookup(media_type, query)

    try:
        result = asyncio.run(_lookup())
    except MetadataError as e:
        _echo_json(e.to_dict())
        sys.exit(1)

    _echo_json(result.to_dict())


def _open_cache(config, auto_cleanup: bool = True) -> MetadataCache:
    return MetadataCache(
        config.cache.path,
        default_ttl_hours=config.cache.default_ttl_hours,
        enabled=config.cache.enabled,
        auto_cleanup=auto_cleanup,
    )


def _require_sources(config, media_type: str) -> None:
    """Exit with a message when no provider can serve ``media_type``."""
    valid, warnings = config.validate_sources_for(media_type)
    for warning in warnings:
        get_logger(__name__).warning(warning)
    if not valid:
        click.secho(f"✗ {'; '.join(warnings)}", fg="red", err=True)
        sys.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to configuration file (defaults to built-in defaults)",
)
@click.pass_context
def cli(ctx, config):
    """mediameta - Book, movie and TV metadata from multiple sources."""
    try:
        cfg = load_config(config)
        ctx.ensure_object(dict)
        ctx.obj["config"] = cfg

        setup_logging(cfg.logging)

    except Exception as e:
        click.echo(f"Error loading configuration: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("title")
@click.option("--author", "-a", default=None, help="Author name (improves matching)")
@click.option("--isbn", default=None, help="ISBN-10 or ISBN-13 (preferred if available)")
@click.option(
    "--source",
    "-s",
    "sources",
    multiple=True,
    type=click.Choice([s.value for s in BookSource]),
    help="Source to query; repeat for several (defaults to all available)",
)
@click.pass_context
def book(ctx, title, author, isbn, sources):
    """Look up a book and merge what every source knows about it."""
    config = ctx.obj["config"]
    _require_sources(config, "book")

    query = {"title": title, "author": author, "isbn": isbn}
    if sources:
        query["sources"] = list(sources)
    _run_lookup(config, "book", query)


@cli.command()
@click.argument("title")
@click.option("--year", "-y", type=int, default=None, help="Release year")
@click.option("--tmdb-id", type=int, default=None, help="TMDB ID if known")
@click.pass_context
def movie(ctx, title, year, tmdb_id):
    """Look up a movie on TMDB."""
    config = ctx.obj["config"]
    _require_sources(config, "movie")
    _run_lookup(config, "movie", {"title": title, "year": year, "tmdb_id": tmdb_id})


@cli.command()
@click.argument("title")
@click.option("--year", "-y", type=int, default=None, help="First air year")
@click.option("--tmdb-id", type=int, default=None, help="TMDB ID if known")
@click.option("--seasons/--no-seasons", default=True, help="Include season information")
@click.option("--episodes", is_flag=True, default=False, help="Include episode details")
@click.option("--specials", is_flag=True, default=False, help="Include season 0 (specials)")
@click.pass_context
def tv(ctx, title, year, tmdb_id, seasons, episodes, specials):
    """Look up a TV show on TMDB."""
    config = ctx.obj["config"]
    _require_sources(config, "tv")
    _run_lookup(
        config,
        "tv",
        {
            "title": title,
            "year": year,
            "tmdb_id": tmdb_id,
            "include_seasons": seasons,
            "include_episodes": episodes,
            "include_specials": specials,
        },
    )


@cli.command()
@click.argument("file", type=click.Path(exists=True, path_type=Path))
@click.pass_context
def batch(ctx, file):
    """Run a batch of lookups from a JSON file.

    The file holds ``{"items": [...], "concurrency": N}``.
    """
    config = ctx.obj["config"]

    try:
        payload = json.loads(file.read_text())
    except (OSError, ValueError) as e:
        click.secho(f"✗ Could not read batch file: {e}", fg="red", err=True)
        sys.exit(1)

    async def _batch():
        async with MetadataResolver.from_config(config) as resolver:
            return await BatchProcessor(resolver).run(payload)

    try:
        output = asyncio.run(_batch())
    except MetadataError as e:
        _echo_json(e.to_dict())
        sys.exit(1)

    _echo_json(output.to_dict())
    if output.failed:
        sys.exit(1)


@cli.group()
def cache():
    """Inspect and maintain the response cache."""


@cache.command()
@click.pass_context
def stats(ctx):
    """Show live entry counts and hit rate."""
    _echo_json(_open_cache(ctx.obj["config"]).stats())


@cache.command()
@click.pass_context
def cleanup(ctx):
    """Delete expired entries."""
    removed = _open_cache(ctx.obj["config"], auto_cleanup=False).cleanup()
    click.secho(f"✓ Removed {removed} expired entries", fg="green")


@cache.command()
@click.argument("source")
@click.pass_context
def clear(ctx, source):
    """Delete every entry cached for SOURCE."""
    removed = _open_cache(ctx.obj["config"]).delete_by_source(source)
    click.secho(f"✓ Removed {removed} entries for {source}", fg="green")


@cli.command()
@click.pass_context
def sources(ctx):
    """Show which metadata sources are available."""
    for status in ctx.obj["config"].source_status():
        if status.available:
            click.secho(f"  ✓ {status.name}", fg="green")
        else:
            click.secho(f"  ✗ {status.name}: {status.reason}", fg="red")


@cli.command()
def version():
    """Show version information."""
    click.echo(f"mediameta v{__version__}")


def main():
    """Entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
