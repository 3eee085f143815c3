"""
Tests for path and filename sanitization
"""
from pathlib import Path, PurePosixPath

import pytest

from rain.services.sanitizer import (
    DEFAULT_UPLOAD_NAME,
    sanitize_archive_path,
    sanitize_filename,
    sanitize_segment,
)


class TestSanitizeSegment:

    def test_safe_characters_are_kept(self):
        assert sanitize_segment("App-1.2_final.log") == "App-1.2_final.log"

    def test_unsafe_characters_become_underscores(self):
        assert sanitize_segment("my log (1).txt") == "my_log__1_.txt"
        assert sanitize_segment("ünïcode") == "_n_code"


class TestSanitizeArchivePath:

    def test_structure_is_preserved(self):
        assert sanitize_archive_path("logs/sub dir/app.log") == PurePosixPath("logs/sub_dir/app.log")

    @pytest.mark.parametrize("name, expected", [
        ("../../etc/passwd", "etc/passwd"),
        ("/var/log/syslog", "var/log/syslog"),
        ("a/../../b.txt", "a/b.txt"),
        ("./x/./y.log", "x/y.log"),
        ("..\\..\\windows\\win.ini", "windows/win.ini"),
    ])
    def test_traversal_components_are_dropped(self, name, expected):
        assert sanitize_archive_path(name) == PurePosixPath(expected)

    @pytest.mark.parametrize("name", ["..", "../", "/", "./.", ""])
    def test_nothing_usable_gives_empty_path(self, name):
        assert sanitize_archive_path(name).parts == ()

    @pytest.mark.parametrize("name", [
        "../escape.txt",
        "/absolute/root.log",
        "deep/../../../../escape.log",
        "..\\..\\backslash.log",
    ])
    def test_never_resolves_outside_destination(self, tmp_path: Path, name):
        dest = tmp_path / "dest"
        resolved = dest.joinpath(*sanitize_archive_path(name).parts).resolve()
        assert resolved.is_relative_to(dest.resolve())


class TestSanitizeFilename:

    def test_plain_name(self):
        assert sanitize_filename("app.log") == "app.log"

    def test_directory_portion_is_discarded(self):
        assert sanitize_filename("../../etc/app log.txt") == "app_log.txt"
        assert sanitize_filename("C:\\Users\\me\\trace.log") == "trace.log"

    @pytest.mark.parametrize("name", ["", "..", ".", "/", None])
    def test_fallback_name(self, name):
        assert sanitize_filename(name) == DEFAULT_UPLOAD_NAME
