"""
ftb-dl: Feed the Beast modpack downloader.

Search the FTB modpack catalog and download modpack versions, fetching
CurseForge-hosted files through the CurseForge API.
"""

from ftb_dl.config import APP_VERSION, NetConfig
from ftb_dl.models import (
    ModpackManifest,
    ModpackVersionManifest,
    ModpackVersionFile,
    CurseForgeRef,
    SearchResult,
    FlameFile,
)
from ftb_dl.gate import AdmissionGate
from ftb_dl.net import NetClient, Service
from ftb_dl.downloader import DownloadOptions, DownloadReport, FileState, VersionDownloader
from ftb_dl.archive import ArchiveType
from ftb_dl.fs import check_file_integrity
from ftb_dl.url import build_cdn_url, get_download_url

__all__ = [
    "NetConfig",
    "ModpackManifest",
    "ModpackVersionManifest",
    "ModpackVersionFile",
    "CurseForgeRef",
    "SearchResult",
    "FlameFile",
    "AdmissionGate",
    "NetClient",
    "Service",
    "DownloadOptions",
    "DownloadReport",
    "FileState",
    "VersionDownloader",
    "ArchiveType",
    "check_file_integrity",
    "build_cdn_url",
    "get_download_url",
]

__version__ = APP_VERSION
