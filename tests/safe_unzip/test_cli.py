"""Tests for the safeunzip Typer CLI: extract, info, sanitize, and global options."""

from __future__ import annotations

import json

from typer.testing import CliRunner

from SafeUnzip import __version__
from SafeUnzip.cli import app

from .support import build_zip

runner = CliRunner()


def _archive(tmp_path, entries=None):
    return build_zip(
        tmp_path / "upload.zip",
        entries
        or [
            ("docs/", None),
            ("docs/readme.txt", b"hello"),
            ("../evil.txt", b"gotcha"),
        ],
    )


class TestCliAppBasics:
    """Tests for basic CLI app functionality."""

    def test_app_shows_help_with_help_flag(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "extract" in result.stdout
        assert "info" in result.stdout

    def test_version_option_shows_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"safeunzip {__version__}" in result.stdout


class TestExtractCommand:
    """extract ARCHIVE [OUTPUT]"""

    def test_extract_success(self, tmp_path):
        output = tmp_path / "out"
        result = runner.invoke(
            app, ["extract", str(_archive(tmp_path)), str(output), "--workers", "4", "--no-fsync"]
        )
        assert result.exit_code == 0, result.stdout
        assert "seconds" in result.stdout
        assert (output / "docs" / "readme.txt").read_bytes() == b"hello"
        assert (output / "evil.txt").read_bytes() == b"gotcha"

    def test_extract_defaults_to_current_directory(self, tmp_path, monkeypatch):
        archive = _archive(tmp_path)
        workdir = tmp_path / "cwd"
        workdir.mkdir()
        monkeypatch.chdir(workdir)
        result = runner.invoke(app, ["extract", str(archive), "--no-fsync"])
        assert result.exit_code == 0, result.stdout
        assert (workdir / "docs" / "readme.txt").exists()

    def test_extract_json_report(self, tmp_path):
        output = tmp_path / "out"
        result = runner.invoke(
            app, ["extract", str(_archive(tmp_path)), str(output), "--json", "--no-fsync"]
        )
        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert payload["ok"] is True
        assert payload["metrics"]["files_written"] == 2
        assert payload["failures"] == []

    def test_extract_exit_code_on_entry_failure(self, tmp_path):
        output = tmp_path / "out"
        output.mkdir()
        (output / "blocker").write_bytes(b"")
        archive = _archive(tmp_path, [("blocker/inner.txt", b"x"), ("ok.txt", b"y")])

        result = runner.invoke(app, ["extract", str(archive), str(output), "--no-fsync"])

        assert result.exit_code == 1
        assert "entry #0" in result.stdout
        assert (output / "ok.txt").read_bytes() == b"y"

    def test_extract_missing_archive(self, tmp_path):
        result = runner.invoke(app, ["extract", str(tmp_path / "nope.zip"), str(tmp_path)])
        assert result.exit_code == 2
        assert "Archive not found" in result.stdout

    def test_extract_invalid_settings(self, tmp_path):
        result = runner.invoke(
            app,
            ["extract", str(_archive(tmp_path)), str(tmp_path / "out"), "-w", "8", "--max-in-flight", "2"],
        )
        assert result.exit_code == 2
        assert "Invalid settings" in result.stdout


class TestInfoCommand:
    def test_info_lists_entries(self, tmp_path):
        result = runner.invoke(app, ["info", str(_archive(tmp_path))])
        assert result.exit_code == 0, result.stdout
        assert "file-count: 3" in result.stdout
        assert "readme.txt" in result.stdout
        assert "deflated" in result.stdout

    def test_info_prints_markup_like_names_verbatim(self, tmp_path):
        archive = _archive(tmp_path, [("[/bogus]x.txt", b"a"), ("[red]loud[/red].txt", b"b")])
        result = runner.invoke(app, ["info", str(archive)])
        assert result.exit_code == 0, result.stdout
        assert "[/bogus]x.txt" in result.stdout
        assert "[red]loud[/red].txt" in result.stdout

    def test_info_missing_archive(self, tmp_path):
        result = runner.invoke(app, ["info", str(tmp_path / "nope.zip")])
        assert result.exit_code == 2


class TestSanitizeCommand:
    def test_sanitize_names(self):
        result = runner.invoke(app, ["sanitize", "../../etc/passwd", "////", "a\\b"])
        assert result.exit_code == 0
        lines = result.stdout.strip().splitlines()
        assert lines[0].endswith("-> etc/passwd")
        assert lines[1].endswith("-> <empty>")
        assert lines[2].endswith("-> a/b")
