"""
Pydantic data models for the Feed the Beast and CurseForge API responses.

Only the fields ftb-dl actually reads are typed strictly; unknown fields are
ignored so upstream additions do not break parsing.
"""

from __future__ import annotations

import posixpath
from typing import Optional

from pydantic import BaseModel, Field


# ── Feed the Beast: shared pieces ──────────────────────────────────


class ModpackTag(BaseModel):
    id: int = 0
    name: str = ""


class ModpackAuthor(BaseModel):
    id: int = 0
    name: str = ""
    type: str = ""
    website: str = ""
    updated: int = 0


class ModpackArt(BaseModel):
    id: int = 0
    type: str = ""
    url: str = ""
    width: int = 0
    height: int = 0


class VersionSpecs(BaseModel):
    id: int = 0
    minimum: int = 0
    recommended: int = 0


class VersionTarget(BaseModel):
    """A runtime target of a version, e.g. ``minecraft 1.20.1`` or ``forge 47.2.0``."""

    id: int = 0
    name: str = ""
    type: str = ""
    version: str = ""
    updated: int = 0


class ModpackVersionSummary(BaseModel):
    """A version entry as listed inside :class:`ModpackManifest`."""

    id: int = 0
    name: str = ""
    type: str = ""
    updated: int = 0
    specs: VersionSpecs = Field(default_factory=VersionSpecs)
    targets: list[VersionTarget] = Field(default_factory=list)


# ── Feed the Beast: modpack ────────────────────────────────────────


class ModpackManifest(BaseModel):
    """Response of ``GET /modpack/{id}``."""

    id: int = 0
    name: str = ""
    synopsis: str = ""
    description: str = ""
    type: str = ""
    status: str = ""
    tags: list[ModpackTag] = Field(default_factory=list)
    authors: list[ModpackAuthor] = Field(default_factory=list)
    art: list[ModpackArt] = Field(default_factory=list)
    versions: list[ModpackVersionSummary] = Field(default_factory=list)
    installs: int = 0
    plays: int = 0
    plays_14d: int = 0
    released: int = 0
    updated: int = 0


# ── Feed the Beast: modpack version ────────────────────────────────


class CurseForgeRef(BaseModel):
    """Locator of a file hosted on CurseForge instead of the FTB CDN."""

    project: int
    file: int


class ModpackVersionFile(BaseModel):
    """
    A single file of a modpack version.

    ``path`` is the directory relative to the instance root (e.g. ``./mods/``)
    and ``name`` the file name inside it. Files with a ``curseforge`` locator
    must be fetched through the CurseForge API.
    """

    id: int = 0
    type: str = ""
    path: str = ""
    name: str
    version: str = ""
    url: str = ""
    mirrors: list[str] = Field(default_factory=list)
    sha1: str = ""
    size: int = 0
    tags: list[str] = Field(default_factory=list)
    clientonly: bool = False
    serveronly: bool = False
    optional: bool = False
    updated: int = 0
    curseforge: Optional[CurseForgeRef] = None

    @property
    def hash_algorithm(self) -> str:
        return "sha1"

    @property
    def expected_hash(self) -> str:
        return self.sha1

    @property
    def relative_path(self) -> str:
        """``path`` and ``name`` joined and normalized, POSIX style."""
        return posixpath.normpath(posixpath.join(self.path or ".", self.name))


class ModpackVersionManifest(BaseModel):
    """Response of ``GET /modpack/{id}/{versionId}``."""

    id: int = 0
    parent: int = 0
    name: str = ""
    type: str = ""
    status: str = ""
    changelog: Optional[str] = None
    specs: VersionSpecs = Field(default_factory=VersionSpecs)
    targets: list[VersionTarget] = Field(default_factory=list)
    files: list[ModpackVersionFile] = Field(default_factory=list)
    installs: int = 0
    plays: int = 0
    updated: int = 0


class Changelog(BaseModel):
    content: str = ""
    updated: int = 0


class SearchResult(BaseModel):
    """Response of ``GET /modpack/search/{limit}?term=...``."""

    packs: list[int] = Field(default_factory=list)
    curseforge: list[int] = Field(default_factory=list)
    total: int = 0
    limit: int = 0
    refined: int = 0


# ── CurseForge ─────────────────────────────────────────────────────


class FlameFileHash(BaseModel):
    value: str = ""
    algo: int = 0  # 1=sha1, 2=md5


class FlameFile(BaseModel):
    """The ``data`` object of CurseForge ``GET /mods/{modId}/files/{fileId}``."""

    id: int = 0
    mod_id: int = Field(default=0, alias="modId")
    display_name: str = Field(default="", alias="displayName")
    file_name: str = Field(default="", alias="fileName")
    file_length: int = Field(default=0, alias="fileLength")
    download_url: Optional[str] = Field(default=None, alias="downloadUrl")
    hashes: list[FlameFileHash] = Field(default_factory=list)

    model_config = {"populate_by_name": True}
