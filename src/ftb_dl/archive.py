"""
Archive creation for downloaded modpack versions.

Supports ``.zip``, ``.tar`` and ``.tar.gz``. Compression levels run from
``0`` (no compression) to ``9`` (best); plain ``.tar`` ignores the level.
"""

from __future__ import annotations

import logging
import tarfile
import zipfile
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)


class ArchiveType(str, Enum):
    NONE = "none"
    ZIP = "zip"
    TAR = "tar"
    TAR_GZIP = "tar.gz"

    @property
    def extension(self) -> str:
        return "" if self is ArchiveType.NONE else f".{self.value}"


def create_archive(
    source_dir: str | Path,
    destination: str | Path,
    archive_type: ArchiveType,
    compression: int = 0,
) -> Path:
    """
    Pack the contents of ``source_dir`` into ``destination``.

    Entries are stored relative to ``source_dir`` in sorted order, so the
    archive root mirrors the staging directory layout.
    """
    source_dir = Path(source_dir)
    destination = Path(destination)
    archive_type = ArchiveType(archive_type)
    if not 0 <= compression <= 9:
        raise ValueError(f"Compression level must be between 0 and 9, got {compression}")
    if archive_type is ArchiveType.NONE:
        raise ValueError("Archive type 'none' cannot be archived")
    if not source_dir.is_dir():
        raise NotADirectoryError(f"{source_dir} is not a directory")

    destination.parent.mkdir(parents=True, exist_ok=True)
    files = sorted(p for p in source_dir.rglob("*") if p.is_file())

    if archive_type is ArchiveType.ZIP:
        if compression == 0:
            kwargs = {"compression": zipfile.ZIP_STORED}
        else:
            kwargs = {"compression": zipfile.ZIP_DEFLATED, "compresslevel": compression}
        with zipfile.ZipFile(destination, "w", **kwargs) as zf:
            for path in files:
                zf.write(path, path.relative_to(source_dir).as_posix())
    elif archive_type is ArchiveType.TAR:
        with tarfile.open(destination, "w") as tf:
            for path in files:
                tf.add(path, arcname=path.relative_to(source_dir).as_posix())
    else:
        with tarfile.open(destination, "w:gz", compresslevel=compression) as tf:
            for path in files:
                tf.add(path, arcname=path.relative_to(source_dir).as_posix())

    logger.info("Archived %d files into %s", len(files), destination)
    return destination
