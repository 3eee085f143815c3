"""
Tests for zip archive expansion
"""
from pathlib import Path

import pytest

from rain.core.exceptions import BadRequestError, StorageIOError
from rain.services.archive import expand_archive, expand_archive_sync


def write_zip(path: Path, make_zip, entries) -> Path:
    path.write_bytes(make_zip(entries))
    return path


class TestExpandArchive:

    def test_preserves_directory_structure(self, tmp_path, make_zip):
        src = write_zip(tmp_path / "logs.zip", make_zip, [
            ("logs/", ""),
            ("logs/app.log", "hello\n"),
            ("sub/deep.log", "deep\n"),
        ])
        dest = tmp_path / "out"
        dest.mkdir()

        result = expand_archive_sync(src, dest)

        assert (dest / "logs").is_dir()
        assert (dest / "logs" / "app.log").read_text() == "hello\n"
        # Parent directories are created for file entries without a dir entry
        assert (dest / "sub" / "deep.log").read_text() == "deep\n"
        assert result.files == 2
        assert result.directories == 1
        assert result.skipped == 0

    def test_hostile_names_stay_inside_destination(self, tmp_path, make_zip):
        src = write_zip(tmp_path / "evil.zip", make_zip, [
            ("../evil.txt", "1"),
            ("/abs/root.log", "2"),
            ("a/../../b.txt", "3"),
            ("..\\win.txt", "4"),
        ])
        dest = tmp_path / "out"
        dest.mkdir()

        expand_archive_sync(src, dest)

        assert not (tmp_path / "evil.txt").exists()
        assert (dest / "evil.txt").read_text() == "1"
        assert (dest / "abs" / "root.log").read_text() == "2"
        assert (dest / "a" / "b.txt").read_text() == "3"
        assert (dest / "win.txt").read_text() == "4"

        for path in dest.rglob("*"):
            assert path.resolve().is_relative_to(dest.resolve())

    def test_entries_without_usable_path_are_skipped(self, tmp_path, make_zip):
        src = write_zip(tmp_path / "dots.zip", make_zip, [
            ("../", ""),
            ("ok.log", "fine"),
        ])
        dest = tmp_path / "out"
        dest.mkdir()

        result = expand_archive_sync(src, dest)

        assert result.skipped == 1
        assert result.files == 1
        assert sorted(p.name for p in dest.iterdir()) == ["ok.log"]

    def test_corrupt_archive_is_bad_request(self, tmp_path):
        src = tmp_path / "broken.zip"
        src.write_bytes(b"this is not a zip file")

        with pytest.raises(BadRequestError) as exc_info:
            expand_archive_sync(src, tmp_path)

        assert "invalid zip archive" in exc_info.value.message

    def test_entry_limit(self, tmp_path, make_zip):
        src = write_zip(tmp_path / "many.zip", make_zip, [
            ("one.log", "1"),
            ("two.log", "2"),
        ])

        with pytest.raises(BadRequestError):
            expand_archive_sync(src, tmp_path / "out", max_entries=1)

        assert not (tmp_path / "out").exists()

    def test_size_limit(self, tmp_path, make_zip):
        src = write_zip(tmp_path / "big.zip", make_zip, [("big.log", "x" * 1000)])

        with pytest.raises(BadRequestError):
            expand_archive_sync(src, tmp_path / "out", max_total_bytes=100)

    @pytest.mark.asyncio
    async def test_async_expansion_returns_result(self, tmp_path, make_zip):
        src = write_zip(tmp_path / "logs.zip", make_zip, [("a/b/c.log", "abc\n")])
        dest = tmp_path / "out"
        dest.mkdir()

        result = await expand_archive(src, dest)

        assert result.files == 1
        assert result.bytes_written == 4
        assert (dest / "a" / "b" / "c.log").exists()

    @pytest.mark.asyncio
    async def test_async_expansion_propagates_errors(self, tmp_path):
        src = tmp_path / "broken.zip"
        src.write_bytes(b"PK\x03\x04 truncated")

        with pytest.raises(BadRequestError):
            await expand_archive(src, tmp_path)


class TestArchiveFaultClassification:
    """Damaged uploads are bad requests, not storage failures"""

    def test_undecodable_utf8_entry_name(self, tmp_path, make_zip):
        # "é" is stored as two UTF-8 bytes with the UTF-8 name flag set;
        # swap them for bytes that are not valid UTF-8 in both headers.
        archive = make_zip([("é.log", "payload")])
        assert archive.count(b"\xc3\xa9.log") == 2
        src = tmp_path / "names.zip"
        src.write_bytes(archive.replace(b"\xc3\xa9.log", b"\xff\xfe.log"))

        with pytest.raises(BadRequestError):
            expand_archive_sync(src, tmp_path / "out")

    def test_corrupt_central_directory_offset(self, tmp_path, make_zip):
        archive = bytearray(make_zip([("one.log", "1" * 50), ("two.log", "2" * 50)]))
        # Last byte of the central directory offset in the 22-byte end record
        archive[-3] = 0xC3
        src = tmp_path / "offset.zip"
        src.write_bytes(bytes(archive))
        dest = tmp_path / "out"
        dest.mkdir()

        with pytest.raises(BadRequestError):
            expand_archive_sync(src, dest)

    @pytest.mark.parametrize("entries", [
        [("a", "file first"), ("a/b.log", "nested")],
        [("a/b.log", "nested"), ("a", "file last")],
    ])
    def test_file_and_directory_share_a_path(self, tmp_path, make_zip, entries):
        src = write_zip(tmp_path / "clash.zip", make_zip, entries)
        dest = tmp_path / "out"
        dest.mkdir()

        with pytest.raises(BadRequestError) as exc_info:
            expand_archive_sync(src, dest)

        assert "share the same path" in exc_info.value.message

    def test_missing_source_is_storage_error(self, tmp_path):
        with pytest.raises(StorageIOError):
            expand_archive_sync(tmp_path / "gone.zip", tmp_path)
