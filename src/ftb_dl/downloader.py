"""
Modpack version downloader.

Handles the complete flow of downloading one version of an FTB modpack:
  1. Fetch the version manifest from the FTB API
  2. Select the files relevant to a client (or server) install
  3. Skip files already present in the staging directory with a valid hash
  4. Download the rest in parallel through the admission gate, with retries
  5. Copy the staging directory to the output directory, or archive it
  6. Remove the staging directory (unless asked not to)

A file that exhausts its retries aborts the batch: files that have not
started yet skip their download, in-flight downloads are allowed to finish,
and a :class:`~ftb_dl.errors.BatchDownloadError` is raised once everything
has settled.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field
from tqdm import tqdm

from ftb_dl.archive import ArchiveType, create_archive
from ftb_dl.errors import (
    BatchDownloadError,
    FileDownloadError,
    FTBDLError,
    IntegrityError,
    QueueTimeoutError,
    RequestError,
)
from ftb_dl.fs import (
    check_file_integrity,
    copy_directory,
    create_os_temp_directory,
    hash_file,
    is_file,
    prepare_destination,
    remove_directory,
    remove_file,
    safe_join,
)
from ftb_dl.models import ModpackVersionFile, ModpackVersionManifest
from ftb_dl.net import NetClient

logger = logging.getLogger(__name__)

STAGING_PREFIX = "ftb-dl-"


class FileState(str, Enum):
    PENDING = "pending"
    SKIPPED = "skipped"
    DOWNLOADING = "downloading"
    VERIFIED = "verified"
    FAILED = "failed"


class DownloadOptions(BaseModel):
    """Knobs for :meth:`VersionDownloader.download_version`."""

    output_dir: Path = Field(default_factory=Path.cwd)
    archive: ArchiveType = ArchiveType.NONE
    compression: int = Field(default=0, ge=0, le=9)
    # Total attempts per file, not extra attempts after the first
    per_file_retries: int = Field(default=3, ge=1)
    check_integrity: bool = True
    overwrite_existing: bool = False
    staging_path: Optional[Path] = None
    cleanup: bool = True
    dry_run: bool = False
    server: bool = False
    retry_backoff: float = Field(default=1.0, ge=0)
    wait_timeout: Optional[float] = None
    show_progress: bool = True


@dataclass(eq=False)
class FileResult:
    file: ModpackVersionFile
    staging_path: Path
    state: FileState = FileState.PENDING
    attempts: int = 0
    error: Optional[BaseException] = None


@dataclass
class DownloadReport:
    modpack_id: int
    version_id: int
    manifest: ModpackVersionManifest
    destination: Path
    results: list[FileResult] = field(default_factory=list)
    dry_run: bool = False

    def count(self, state: FileState) -> int:
        return sum(1 for r in self.results if r.state is state)

    @property
    def skipped(self) -> int:
        return self.count(FileState.SKIPPED)

    @property
    def downloaded(self) -> int:
        return self.count(FileState.VERIFIED)

    @property
    def to_download(self) -> list[FileResult]:
        return [r for r in self.results if r.state is not FileState.SKIPPED]


class VersionDownloader:
    """
    Download a modpack version.

    Usage::

        async with NetClient(config) as net:
            downloader = VersionDownloader(net)
            report = await downloader.download_version(
                5, 6112, DownloadOptions(output_dir=Path("./packs"))
            )
    """

    def __init__(self, net: NetClient):
        self.net = net

    # ── Public entry point ─────────────────────────────────────────

    async def download_version(
        self,
        modpack_id: int,
        version_id: int,
        options: Optional[DownloadOptions] = None,
    ) -> DownloadReport:
        options = options or DownloadOptions()
        logger.info(
            "Downloading modpack with ID %d, version with ID %d",
            modpack_id,
            version_id,
        )
        manifest = await self.net.get_modpack_version(modpack_id, version_id)
        destination = self.final_destination(modpack_id, version_id, options)
        if not options.dry_run and not options.overwrite_existing:
            # Fail before downloading anything rather than after
            prepare_destination(destination, overwrite=False)

        staging = options.staging_path
        if staging is None:
            staging = create_os_temp_directory(STAGING_PREFIX)
        else:
            staging.mkdir(parents=True, exist_ok=True)
        logger.debug("Staging files in %s", staging)

        report = DownloadReport(
            modpack_id=modpack_id,
            version_id=version_id,
            manifest=manifest,
            destination=destination,
            dry_run=options.dry_run,
        )
        try:
            await self._process(report, staging, options)
        finally:
            if options.cleanup:
                logger.debug("Removing staging directory %s", staging)
                remove_directory(staging, missing_ok=True)
        return report

    @staticmethod
    def final_destination(
        modpack_id: int, version_id: int, options: DownloadOptions
    ) -> Path:
        name = f"ftb-{modpack_id}-{version_id}{options.archive.extension}"
        return Path(options.output_dir) / name

    @staticmethod
    def select_files(
        manifest: ModpackVersionManifest, server: bool = False
    ) -> list[ModpackVersionFile]:
        """Files needed for a client install (or a server install if ``server``)."""
        if server:
            return [f for f in manifest.files if not f.clientonly]
        return [f for f in manifest.files if not f.serveronly]

    # ── Steps ──────────────────────────────────────────────────────

    async def _process(
        self, report: DownloadReport, staging: Path, options: DownloadOptions
    ) -> None:
        files = self.select_files(report.manifest, server=options.server)
        report.results = [
            FileResult(file=f, staging_path=safe_join(staging, f.relative_path))
            for f in files
        ]
        for result in report.results:
            if not self._needs_download(result, options):
                result.state = FileState.SKIPPED
        pending = report.to_download
        logger.info(
            "%d files selected, %d already staged, downloading %d files...",
            len(report.results),
            report.skipped,
            len(pending),
        )

        if options.dry_run:
            for result in pending:
                logger.info("Would download %s", result.file.relative_path)
            return

        await self._download_files(pending, options)

        if options.archive is ArchiveType.NONE:
            logger.info("Copying %s to %s...", staging, report.destination)
            copy_directory(staging, report.destination, overwrite=options.overwrite_existing)
        else:
            prepare_destination(report.destination, overwrite=options.overwrite_existing)
            create_archive(staging, report.destination, options.archive, options.compression)

    @staticmethod
    def _needs_download(result: FileResult, options: DownloadOptions) -> bool:
        file = result.file
        exists = is_file(result.staging_path)
        if exists and options.check_integrity and file.expected_hash:
            return not check_file_integrity(
                result.staging_path, file.expected_hash, file.hash_algorithm
            )
        return not exists

    async def _download_files(
        self, pending: list[FileResult], options: DownloadOptions
    ) -> None:
        if not pending:
            return
        abort = asyncio.Event()
        pbar = tqdm(
            total=len(pending),
            desc="Downloading files",
            unit="file",
            disable=not options.show_progress,
        )

        async def download_one(result: FileResult):
            try:
                await self._download_with_retries(result, options, abort)
            finally:
                pbar.update(1)

        outcomes = await asyncio.gather(
            *[download_one(r) for r in pending], return_exceptions=True
        )
        pbar.close()

        failures = [o for o in outcomes if isinstance(o, FileDownloadError)]
        unexpected = [
            o for o in outcomes
            if isinstance(o, BaseException) and not isinstance(o, FileDownloadError)
        ]
        if unexpected:
            raise unexpected[0]
        if failures:
            raise BatchDownloadError(failures) from failures[0]
        logger.info("Downloaded %d files", len(pending))

    async def _download_with_retries(
        self, result: FileResult, options: DownloadOptions, abort: asyncio.Event
    ) -> None:
        file = result.file
        target = result.staging_path
        last_error: Optional[BaseException] = None

        for attempt in range(1, options.per_file_retries + 1):
            try:
                await self.net.wait_until_queue_has_space(options.wait_timeout)
            except QueueTimeoutError as e:
                last_error = e
                break
            if abort.is_set():
                logger.debug("Skipping %s, batch aborted", file.relative_path)
                remove_file(target, missing_ok=True)
                return

            result.state = FileState.DOWNLOADING
            result.attempts = attempt
            logger.debug("Downloading %s to %s...", file.name, target)
            remove_file(target, missing_ok=True)
            try:
                await self._fetch(file, target)
                self._verify(result, options)
            except (FTBDLError, OSError) as e:
                last_error = e
                remove_file(target, missing_ok=True)
                if attempt < options.per_file_retries:
                    wait = options.retry_backoff * 2 ** (attempt - 1)
                    logger.warning(
                        "Download %s failed (attempt %d/%d): %s; retrying in %gs",
                        file.relative_path, attempt, options.per_file_retries, e, wait,
                    )
                    if wait:
                        await asyncio.sleep(wait)
                continue
            except Exception as e:
                # Bad payload or bug: give up on this file without retrying
                logger.debug("Unexpected error downloading %s", file.relative_path, exc_info=True)
                last_error = e
                remove_file(target, missing_ok=True)
                break
            result.state = FileState.VERIFIED
            return

        result.state = FileState.FAILED
        error = FileDownloadError(file.relative_path, result.attempts, last_error)
        result.error = error
        abort.set()
        logger.error("%s", error)
        raise error from last_error

    async def _fetch(self, file: ModpackVersionFile, target: Path) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        if file.curseforge is not None:
            await self.net.get_flame_file(file.curseforge.project, file.curseforge.file, target)
        elif file.url:
            await self.net.get_ftb_file(file.url, target)
        else:
            raise RequestError(f"{file.relative_path} has no download source")

    @staticmethod
    def _verify(result: FileResult, options: DownloadOptions) -> None:
        file = result.file
        if not is_file(result.staging_path):
            raise IntegrityError(result.staging_path, file.expected_hash, None)
        if options.check_integrity and file.expected_hash:
            actual = hash_file(result.staging_path, file.hash_algorithm)
            if actual != file.expected_hash.lower():
                raise IntegrityError(result.staging_path, file.expected_hash, actual)
