"""
Download URL resolution for files hosted on CurseForge.

FTB version manifests list many mods only by a ``curseforge`` locator
(project ID and file ID) with no direct URL; those are resolved through the
CurseForge files API before downloading.

When the CurseForge API returns ``downloadUrl = null`` (the author disabled
third-party distribution), a working URL can still be built from the file ID
and file name using the CDN pattern on ``edge.forgecdn.net``::

    https://edge.forgecdn.net/files/{fileID // 1000}/{fileID % 1000}/{fileName}
"""

from __future__ import annotations

from urllib.parse import quote

from ftb_dl.models import FlameFile

CDN_BASE = "https://edge.forgecdn.net/files"


def build_cdn_url(file_id: int, file_name: str) -> str:
    """Construct a CurseForge CDN download URL from a file ID and file name."""
    return f"{CDN_BASE}/{file_id // 1000}/{file_id % 1000}/{quote(file_name)}"


def get_download_url(flame_file: FlameFile) -> str:
    """
    Return the download URL for a :class:`FlameFile`.

    Uses ``downloadUrl`` when the API provides one, otherwise the CDN URL.
    """
    if flame_file.download_url:
        return flame_file.download_url
    return build_cdn_url(flame_file.id, flame_file.file_name)
