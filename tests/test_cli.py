"""Tests for the click command line interface."""

import json

import httpx
import pytest
from click.testing import CliRunner

from ftb_dl import cli
from ftb_dl.net import NetClient

PACKS = {
    5: {
        "id": 5,
        "name": "FTB Presents Direwolf20",
        "synopsis": "Direwolf20's modpack",
        "tags": [{"id": 1, "name": "Tech"}],
        "authors": [{"id": 1, "name": "FTB"}],
        "installs": 12345,
        "versions": [{"id": 100, "name": "1.0.0"}],
    },
    7: {"id": 7, "name": "FTB Skies"},
}

VERSION = {
    "id": 100,
    "parent": 5,
    "name": "1.0.0",
    "changelog": "/modpack/5/100/changelog",
    "targets": [{"name": "minecraft", "version": "1.20.1"}],
    "files": [
        {"name": "a.jar", "path": "./mods/", "url": "https://cdn.test/a.jar", "sha1": "00"},
        {"name": "server.properties", "path": "./", "url": "https://cdn.test/s", "serveronly": True},
    ],
}


def handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path.removeprefix("/public")
    if path.startswith("/modpack/search/"):
        body = {"packs": [5, 7], "curseforge": [99], "total": 3, "limit": 10}
    elif path == "/modpack/5/100/changelog":
        body = {"content": "Fixed everything", "updated": 0}
    elif path == "/modpack/5/100":
        body = VERSION
    elif path == "/modpack/5/666":
        evil = {"name": "evil.jar", "path": "../../../", "url": "https://cdn.test/e"}
        body = {**VERSION, "id": 666, "files": [evil]}
    elif path.startswith("/modpack/"):
        pack = PACKS.get(int(path.rsplit("/", 1)[-1]))
        if pack is None:
            return httpx.Response(404, content=b'{"status": "error", "message": "Modpack not found"}')
        body = pack
    else:
        return httpx.Response(500)
    return httpx.Response(200, content=json.dumps(body).encode())


@pytest.fixture
def runner(monkeypatch):
    monkeypatch.setattr(
        cli, "_make_client", lambda config: NetClient(config, transport=httpx.MockTransport(handler))
    )
    monkeypatch.delenv("CURSEFORGE_API_KEY", raising=False)
    return CliRunner()


class TestSearch:
    def test_text_output(self, runner):
        result = runner.invoke(cli.main, ["search", "direwolf"])
        assert result.exit_code == 0, result.output
        assert "5 - FTB Presents Direwolf20" in result.output
        assert "7 - FTB Skies" in result.output
        assert "(+1 CurseForge modpacks not listed)" in result.output

    def test_json_output_to_file(self, runner, tmp_path):
        out = tmp_path / "search.json"
        result = runner.invoke(cli.main, ["search", "direwolf", "--json", "-o", str(out)])
        assert result.exit_code == 0, result.output
        data = json.loads(out.read_text())
        assert data["packs"] == [5, 7]

    def test_available_under_modpack_group(self, runner):
        result = runner.invoke(cli.main, ["modpack", "search", "skies"])
        assert result.exit_code == 0, result.output
        assert "7 - FTB Skies" in result.output


class TestInfo:
    def test_modpack_info(self, runner):
        result = runner.invoke(cli.main, ["info", "5"])
        assert result.exit_code == 0, result.output
        assert "FTB Presents Direwolf20" in result.output
        assert "Tags: Tech" in result.output
        assert "Total Installs: 12,345" in result.output
        assert "* 1.0.0 (ID: 100)" in result.output

    def test_modpack_info_json(self, runner, tmp_path):
        out = tmp_path / "pack.json"
        result = runner.invoke(cli.main, ["modpack", "info", "5", "--json", "--pretty", "-o", str(out)])
        assert result.exit_code == 0, result.output
        assert json.loads(out.read_text())["name"] == "FTB Presents Direwolf20"
        assert out.read_text().startswith("{\n    ")

    def test_unknown_modpack_exits_with_error(self, runner):
        result = runner.invoke(cli.main, ["info", "404"])
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_version_info_includes_changelog(self, runner):
        result = runner.invoke(cli.main, ["version", "info", "5", "100"])
        assert result.exit_code == 0, result.output
        assert "Fixed everything" in result.output
        assert "Target: minecraft 1.20.1" in result.output
        assert "Files: 2" in result.output


class TestDownload:
    def test_dry_run_lists_client_files(self, runner, tmp_path):
        result = runner.invoke(
            cli.main,
            [
                "version", "download", "5", "100",
                "--dry-run", "--no-progress",
                "--output-dir", str(tmp_path / "out"),
                "--temp-path", str(tmp_path / "staging"),
            ],
        )
        assert result.exit_code == 0, result.output
        assert "1 file(s) would be downloaded" in result.output
        assert "mods/a.jar" in result.output
        assert "server.properties" not in result.output
        assert not (tmp_path / "out").exists()

    def test_invalid_compression_is_rejected(self, runner):
        result = runner.invoke(cli.main, ["version", "download", "5", "100", "--compression", "12"])
        assert result.exit_code == 2

    def test_invalid_max_connections_is_rejected(self, runner):
        result = runner.invoke(cli.main, ["-c", "0", "search", "x"])
        assert result.exit_code == 2

    def test_path_escaping_staging_is_reported(self, runner, tmp_path):
        result = runner.invoke(
            cli.main,
            [
                "version", "download", "5", "666", "--no-progress",
                "--output-dir", str(tmp_path / "out"),
                "--temp-path", str(tmp_path / "staging"),
            ],
        )
        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "escapes" in result.output
