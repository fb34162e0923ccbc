"""
Filesystem helpers for the staging directory and final output.
"""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
import tempfile
from pathlib import Path

from ftb_dl.errors import DestinationExistsError, UnsafePathError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def exists(path: str | Path) -> bool:
    return Path(path).exists()


def is_file(path: str | Path) -> bool:
    return Path(path).is_file()


def is_directory(path: str | Path) -> bool:
    return Path(path).is_dir()


def hash_file(path: str | Path, algo: str = "sha1") -> str:
    """Hex digest of a file, read in chunks."""
    digest = hashlib.new(algo)
    with open(path, "rb") as fp:
        for chunk in iter(lambda: fp.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def check_file_integrity(path: str | Path, expected: str, algo: str = "sha1") -> bool:
    """
    Whether ``path`` is a regular file whose ``algo`` digest equals ``expected``.

    Missing paths and directories return ``False``. The comparison ignores
    the case of the hex digest.
    """
    if not is_file(path):
        return False
    return hash_file(path, algo) == expected.strip().lower()


def create_temp_directory(root: str | Path, prefix: str) -> Path:
    root = Path(root)
    if not root.is_dir():
        raise NotADirectoryError(
            f"Cannot create a temporary directory in {root}, not a directory"
        )
    return Path(tempfile.mkdtemp(prefix=prefix, dir=root))


def create_os_temp_directory(prefix: str) -> Path:
    return create_temp_directory(tempfile.gettempdir(), prefix)


def remove_file(path: str | Path, missing_ok: bool = False) -> None:
    path = Path(path)
    if not path.is_file():
        if missing_ok and not path.exists():
            return
        raise FileNotFoundError(f"{path} is not a file")
    path.unlink()


def remove_directory(path: str | Path, missing_ok: bool = False) -> None:
    path = Path(path)
    if not path.is_dir():
        if missing_ok and not path.exists():
            return
        raise NotADirectoryError(f"{path} is not a directory")
    shutil.rmtree(path)


def prepare_destination(destination: Path, overwrite: bool) -> None:
    if not destination.exists() and not destination.is_symlink():
        return
    if not overwrite:
        raise DestinationExistsError(f"{destination} already exists")
    logger.debug("Overwriting existing %s", destination)
    if destination.is_dir() and not destination.is_symlink():
        shutil.rmtree(destination)
    else:
        destination.unlink()


def copy_file(source: str | Path, destination: str | Path, overwrite: bool = False) -> Path:
    source, destination = Path(source), Path(destination)
    if not source.is_file():
        raise FileNotFoundError(f"{source} is not a file")
    prepare_destination(destination, overwrite)
    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(source, destination)
    return destination


def copy_directory(
    source: str | Path, destination: str | Path, overwrite: bool = False
) -> Path:
    """Recursively copy ``source`` to a new ``destination`` directory."""
    source, destination = Path(source), Path(destination)
    if not source.is_dir():
        raise NotADirectoryError(f"{source} is not a directory")
    prepare_destination(destination, overwrite)
    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.copytree(source, destination)
    return destination


def safe_join(root: str | Path, relative: str) -> Path:
    """
    Join a manifest-relative path onto ``root``.

    Raises :class:`~ftb_dl.errors.UnsafePathError` (a :class:`ValueError`)
    if the result would escape ``root``.
    """
    root = Path(root).resolve()
    target = (root / relative).resolve()
    if os.path.commonpath([root, target]) != str(root):
        raise UnsafePathError(f"Path {relative!r} escapes {root}")
    return target
