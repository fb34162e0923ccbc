"""
CLI entry point for ftb-dl.

Commands:
  - ``ftb-dl search <term>``
  - ``ftb-dl info <modpack_id>`` (same as ``ftb-dl modpack info``)
  - ``ftb-dl version info <modpack_id> <version_id>``
  - ``ftb-dl version download <modpack_id> <version_id>``
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import click
from pydantic import ValidationError

from ftb_dl.archive import ArchiveType
from ftb_dl.config import APP_VERSION, NetConfig
from ftb_dl.downloader import DownloadOptions, VersionDownloader
from ftb_dl.errors import FTBDLError
from ftb_dl.net import NetClient

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def _make_client(config: NetConfig) -> NetClient:
    return NetClient(config)


def _run(ctx: click.Context, job: Callable[[NetClient], Awaitable[Any]]) -> Any:
    """Run ``job`` with a fresh client; report ftb-dl errors and exit 1."""
    config: NetConfig = ctx.obj["config"]

    async def run():
        async with _make_client(config) as net:
            return await job(net)

    try:
        return asyncio.run(run())
    except FTBDLError as e:
        logger.debug("Command failed", exc_info=True)
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def _dump(data: Any, pretty: bool) -> str:
    return json.dumps(data, indent=4 if pretty else None)


def _timestamp(value: int) -> str:
    if not value:
        return "unknown"
    return datetime.fromtimestamp(value).strftime("%Y-%m-%d %H:%M")


output_option = click.option(
    "--output", "-o", default="-", type=click.Path(dir_okay=False, allow_dash=True),
    help="File to write results to ('-' for stdout).",
)
json_option = click.option("--json", "as_json", is_flag=True, help="Output results as JSON.")
pretty_option = click.option("--pretty", is_flag=True, help="Pretty-print JSON output.")


@click.group()
@click.version_option(APP_VERSION, prog_name="ftb-dl")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.option("--max-connections", "-c", type=click.IntRange(min=1), default=None,
              help="Maximum number of parallel connections (default 3).")
@click.option("--timeout", "-t", type=click.FloatRange(min=0, min_open=True), default=None,
              help="Timeout for network requests, in seconds (default 10).")
@click.option("--curseforge-api-key", envvar="CURSEFORGE_API_KEY", default=None,
              help="CurseForge API key.")
@click.option("--user-agent", default=None, help="Custom User-Agent for requests.")
@click.pass_context
def main(
    ctx: click.Context,
    verbose: bool,
    max_connections: Optional[int],
    timeout: Optional[float],
    curseforge_api_key: Optional[str],
    user_agent: Optional[str],
) -> None:
    """ftb-dl: Search for and download Feed the Beast modpacks."""
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = NetConfig.from_env(
            request_limit=max_connections,
            request_timeout=timeout,
            flame_api_key=curseforge_api_key or None,
            user_agent=user_agent,
        )
    except (ValidationError, ValueError) as e:
        raise click.UsageError(f"Invalid network settings: {e}") from e
    ctx.obj["verbose"] = verbose


# ── search ─────────────────────────────────────────────────────────


@main.command()
@click.argument("term")
@click.option("--limit", "-n", default=10, type=click.IntRange(min=1), help="Max results.")
@json_option
@pretty_option
@output_option
@click.pass_context
def search(
    ctx: click.Context, term: str, limit: int, as_json: bool, pretty: bool, output: str
) -> None:
    """Search the Feed the Beast API for modpacks matching TERM."""

    async def job(net: NetClient):
        logger.info('Searching for modpacks by term "%s"', term)
        result = await net.search_modpacks(term, limit)
        if as_json:
            return result, []
        packs = await asyncio.gather(*[net.get_modpack(pid) for pid in result.packs])
        return result, packs

    result, packs = _run(ctx, job)
    with click.open_file(output, "w", encoding="utf-8") as out:
        if as_json:
            click.echo(_dump(result.model_dump(mode="json"), pretty), file=out)
            return
        if not packs:
            click.echo("No results found.", file=out)
            return
        click.echo("Pack ID - Pack Name", file=out)
        click.echo("-------------------", file=out)
        for pack in packs:
            click.echo(f"{pack.id} - {pack.name}", file=out)
        if result.curseforge:
            click.echo(
                f"(+{len(result.curseforge)} CurseForge modpacks not listed)", file=out
            )


# ── modpack info ───────────────────────────────────────────────────


@click.command("info")
@click.argument("modpack_id", type=int)
@json_option
@pretty_option
@output_option
@click.pass_context
def modpack_info(
    ctx: click.Context, modpack_id: int, as_json: bool, pretty: bool, output: str
) -> None:
    """Get the information for a Feed the Beast modpack."""

    async def job(net: NetClient):
        logger.info('Getting information for modpack with ID "%d"', modpack_id)
        return await net.get_modpack(modpack_id)

    pack = _run(ctx, job)
    with click.open_file(output, "w", encoding="utf-8") as out:
        if as_json:
            click.echo(_dump(pack.model_dump(mode="json"), pretty), file=out)
            return
        click.echo(pack.name, file=out)
        click.echo("-" * 25, file=out)
        click.echo(f"\n{pack.synopsis}\n", file=out)
        click.echo(f"ID: {pack.id}", file=out)
        click.echo(f"Tags: {' '.join(t.name for t in pack.tags)}", file=out)
        click.echo("Authors:", file=out)
        for author in pack.authors:
            click.echo(f"* {author.name}", file=out)
        click.echo(f"Total Installs: {pack.installs:,}", file=out)
        click.echo(f"Total Plays: {pack.plays:,}", file=out)
        click.echo(f"Total Plays (14 days): {pack.plays_14d:,}", file=out)
        click.echo(f"Released: {_timestamp(pack.released)}", file=out)
        click.echo("\nAvailable Versions", file=out)
        click.echo("-" * 25, file=out)
        for version in pack.versions:
            click.echo(f"* {version.name} (ID: {version.id})", file=out)


main.add_command(modpack_info)


@main.group()
def modpack() -> None:
    """Operations relating to modpacks."""


modpack.add_command(modpack_info)
modpack.add_command(search)


# ── version ────────────────────────────────────────────────────────


@main.group()
def version() -> None:
    """Operations relating to modpack versions."""


@version.command("info")
@click.argument("modpack_id", type=int)
@click.argument("version_id", type=int)
@json_option
@pretty_option
@output_option
@click.pass_context
def version_info(
    ctx: click.Context,
    modpack_id: int,
    version_id: int,
    as_json: bool,
    pretty: bool,
    output: str,
) -> None:
    """Get the information for a Feed the Beast modpack version."""

    async def job(net: NetClient):
        logger.info(
            'Getting information for modpack with ID "%d", version with ID "%d"',
            modpack_id,
            version_id,
        )
        manifest = await net.get_modpack_version(modpack_id, version_id)
        changelog = None
        # Only fetch the changelog if we need it
        if not as_json and manifest.changelog:
            changelog = await net.get_changelog(manifest.changelog)
        return manifest, changelog

    manifest, changelog = _run(ctx, job)
    with click.open_file(output, "w", encoding="utf-8") as out:
        if as_json:
            click.echo(_dump(manifest.model_dump(mode="json"), pretty), file=out)
            return
        click.echo(manifest.name, file=out)
        click.echo("-" * 25, file=out)
        if changelog is not None:
            click.echo(f"\n{changelog.content}\n", file=out)
        click.echo(f"ID: {manifest.id}", file=out)
        for target in manifest.targets:
            click.echo(f"Target: {target.name} {target.version}", file=out)
        click.echo(f"Files: {len(manifest.files)}", file=out)
        click.echo(f"Total Installs: {manifest.installs:,}", file=out)
        click.echo(f"Total Plays: {manifest.plays:,}", file=out)
        click.echo(f"Updated: {_timestamp(manifest.updated)}", file=out)


@version.command("download")
@click.argument("modpack_id", type=int)
@click.argument("version_id", type=int)
@click.option("--output-dir", default=".", type=click.Path(file_okay=False),
              help="Where to store the downloaded files (default: current dir).")
@click.option("--archive", type=click.Choice([a.value for a in ArchiveType]),
              default=ArchiveType.NONE.value, help="The type of archive to create, if any.")
@click.option("--compression", type=click.IntRange(0, 9), default=0,
              help="Archive compression level, 0 (none) to 9 (best).")
@click.option("--per-file-retries", type=click.IntRange(min=1), default=3,
              help="Maximum number of attempts per file.")
@click.option("--retry-backoff", type=click.FloatRange(min=0), default=1.0,
              help="Seconds to wait before the first retry; doubles on each retry.")
@click.option("--wait-timeout", type=click.FloatRange(min=0, min_open=True), default=None,
              help="Seconds to wait for a free connection before giving up on a file.")
@click.option("--check-integrity/--no-check-integrity", default=True,
              help="Validate file hashes against the manifest.")
@click.option("--overwrite-existing", is_flag=True,
              help="Overwrite an existing output directory or archive.")
@click.option("--temp-path", default=None, type=click.Path(file_okay=False),
              help="Directory to stage downloads in (default: a new OS temp dir).")
@click.option("--cleanup/--no-cleanup", default=True,
              help="Delete the staging directory when done.")
@click.option("--dry-run", is_flag=True, help="Show what would be downloaded and exit.")
@click.option("--server", is_flag=True, help="Download server files instead of client files.")
@click.option("--no-progress", is_flag=True, help="Hide the progress bar.")
@click.pass_context
def version_download(
    ctx: click.Context,
    modpack_id: int,
    version_id: int,
    output_dir: str,
    archive: str,
    compression: int,
    per_file_retries: int,
    retry_backoff: float,
    wait_timeout: Optional[float],
    check_integrity: bool,
    overwrite_existing: bool,
    temp_path: Optional[str],
    cleanup: bool,
    dry_run: bool,
    server: bool,
    no_progress: bool,
) -> None:
    """Download a given version of a given modpack."""
    options = DownloadOptions(
        output_dir=Path(output_dir),
        archive=ArchiveType(archive),
        compression=compression,
        per_file_retries=per_file_retries,
        retry_backoff=retry_backoff,
        wait_timeout=wait_timeout,
        check_integrity=check_integrity,
        overwrite_existing=overwrite_existing,
        staging_path=Path(temp_path) if temp_path else None,
        cleanup=cleanup,
        dry_run=dry_run,
        server=server,
        show_progress=not no_progress,
    )

    async def job(net: NetClient):
        return await VersionDownloader(net).download_version(modpack_id, version_id, options)

    report = _run(ctx, job)
    if report.dry_run:
        click.echo(f"\n{len(report.to_download)} file(s) would be downloaded:")
        for result in report.to_download:
            click.echo(f"  {result.file.relative_path}")
        return
    click.echo(f"\n✓ Downloaded '{report.manifest.name}'")
    click.echo(f"  Files:   {report.downloaded} downloaded, {report.skipped} already staged")
    click.echo(f"  Output:  {report.destination}")


if __name__ == "__main__":
    main()
