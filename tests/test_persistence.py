"""Tests for haunt.persistence -- bookmark documents, loading and migration."""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path

import pytest

from haunt import __version__
from haunt.config import RootDetectionPreferences, StoragePreferences
from haunt.models import Bookmark, ErrorKind
from haunt.persistence import (
    CURRENT_FORMAT_VERSION,
    BookmarkCodec,
    JsonStore,
    generate_bookmark_id,
    is_valid_bookmark,
)
from haunt.root import RootDetector

NO_MARKERS = RootDetectionPreferences(markers=["no-such-marker-4f1c"])


def _bm(file: str, line: int, note: str | None = None, id: str | None = None) -> Bookmark:
    return Bookmark(id=id or generate_bookmark_id(file, line), file=file, line=line, note=note)


def _read(path: Path) -> dict:
    return json.loads(path.read_text(encoding="utf-8"))


# -- JsonStore ---------------------------------------------------------------


class TestJsonStore:
    def test_save_creates_parents(self, tmp_path):
        store = JsonStore(tmp_path / "a" / "b" / "doc.json")
        store.save_raw({"k": "é"})
        assert store.exists()
        assert "é" in store.path.read_text(encoding="utf-8")

    def test_load_raw_returns_bytes_and_data(self, tmp_path):
        path = tmp_path / "doc.json"
        path.write_bytes(b'{"a": 1}')
        raw, data = JsonStore(path).load_raw()
        assert raw == b'{"a": 1}'
        assert data == {"a": 1}

    def test_load_raw_raises_on_bad_json(self, tmp_path):
        path = tmp_path / "doc.json"
        path.write_text("{nope")
        with pytest.raises(ValueError):
            JsonStore(path).load_raw()


# -- Creation and validation -------------------------------------------------


class TestCreateBookmark:
    def test_success(self, codec, file_a):
        result = codec.create_bookmark(file_a, 3, "look")
        assert result.ok
        bm = result.value
        assert (bm.file, bm.line, bm.note) == (file_a, 3, "look")
        assert re.fullmatch(r"[0-9a-f]{16}", bm.id)

    def test_ids_are_unique(self, codec, file_a):
        ids = {codec.create_bookmark(file_a, 1).value.id for _ in range(50)}
        assert len(ids) == 50

    @pytest.mark.parametrize(
        "file, line, note",
        [
            ("", 1, None),
            (None, 1, None),
            ("/x.py", 0, None),
            ("/x.py", -2, None),
            ("/x.py", 1.5, None),
            ("/x.py", True, None),
            ("/x.py", 1, 42),
        ],
    )
    def test_validation(self, codec, notices, file, line, note):
        result = codec.create_bookmark(file, line, note)
        assert not result
        assert result.error is ErrorKind.VALIDATION
        assert notices.at(logging.ERROR)


class TestIsValidBookmark:
    def test_bookmark_instance(self):
        assert is_valid_bookmark(_bm("/x.py", 1))

    def test_mapping(self):
        assert is_valid_bookmark({"id": "abc", "file": "/x.py", "line": 2, "note": None})

    @pytest.mark.parametrize(
        "candidate",
        [
            None,
            "string",
            [],
            {"file": "/x.py", "line": 1},
            {"id": "", "file": "/x.py", "line": 1},
            {"id": "a", "file": "", "line": 1},
            {"id": "a", "file": "/x.py", "line": 0},
            {"id": "a", "file": "/x.py", "line": "3"},
            {"id": "a", "file": "/x.py", "line": 1, "note": 7},
        ],
    )
    def test_rejects(self, candidate):
        assert is_valid_bookmark(candidate) is False

    def test_exposed_on_codec(self, codec):
        assert codec.is_valid_bookmark({"id": "a", "file": "/x", "line": 1})


# -- Save --------------------------------------------------------------------


class TestSave:
    def test_relative_document(self, codec, tmp_path, project, file_a):
        path = tmp_path / "out.json"
        bm = _bm(file_a, 4, "n")
        result = codec.save([bm], path)
        assert result.ok and result.value == 1

        doc = _read(path)
        assert doc["format_version"] == CURRENT_FORMAT_VERSION
        assert doc["project"]["root_absolute"] == str(project)
        assert doc["bookmarks"] == [
            {"file": "src/a.py", "file_absolute": file_a, "line": 4, "note": "n", "id": bm.id}
        ]
        meta = doc["metadata"]
        assert meta["haunt_version"] == __version__
        assert meta["created_at"] == meta["last_modified"]
        assert re.fullmatch(r"\d{4}-\d\d-\d\dT\d\d:\d\d:\d\dZ", meta["last_modified"])

    def test_absolute_paths_option(self, detector, tmp_path, file_a):
        codec = BookmarkCodec(detector, StoragePreferences(use_relative_paths=False))
        codec.save([_bm(file_a, 1)], tmp_path / "out.json")
        assert _read(tmp_path / "out.json")["bookmarks"][0]["file"] == file_a

    def test_without_backup_paths(self, detector, tmp_path, file_a):
        codec = BookmarkCodec(detector, StoragePreferences(store_backup_paths=False))
        codec.save([_bm(file_a, 1)], tmp_path / "out.json")
        assert "file_absolute" not in _read(tmp_path / "out.json")["bookmarks"][0]

    def test_home_normalized_backup_path(self, home, tmp_path):
        root = home / "proj"
        (root / ".git").mkdir(parents=True)
        target = root / "x.py"
        target.write_text("x\n")
        codec = BookmarkCodec(RootDetector(cwd=str(root)))
        codec.save([_bm(str(target), 1)], tmp_path / "out.json")
        doc = _read(tmp_path / "out.json")
        assert doc["project"]["root"] == "~/proj"
        assert doc["bookmarks"][0]["file_absolute"] == "~/proj/x.py"

    def test_empty_list(self, codec, tmp_path):
        result = codec.save([], tmp_path / "out.json")
        assert result.ok and result.value == 0
        assert _read(tmp_path / "out.json")["bookmarks"] == []

    @pytest.mark.parametrize("bookmarks", ["nope", [{"file": "/x", "line": 1}], None])
    def test_rejects_non_bookmarks(self, codec, tmp_path, bookmarks):
        result = codec.save(bookmarks, tmp_path / "out.json")
        assert result.error is ErrorKind.VALIDATION
        assert not (tmp_path / "out.json").exists()

    def test_unwritable_path(self, codec, tmp_path, file_a):
        target = tmp_path / "is_a_dir"
        target.mkdir()
        result = codec.save([_bm(file_a, 1)], target)
        assert result.error is ErrorKind.IO

    def test_unencodable_data(self, codec, tmp_path, file_a):
        bm = Bookmark(id="abc", file=file_a, line=1, note=object())
        result = codec.save([bm], tmp_path / "out.json")
        assert result.error is ErrorKind.DECODE
        assert not (tmp_path / "out.json").exists()


# -- Load --------------------------------------------------------------------


class TestLoad:
    @pytest.mark.parametrize("count", [0, 1, 50])
    def test_round_trip(self, codec, tmp_path, file_a, file_b, count):
        bookmarks = [
            _bm(file_a if i % 2 else file_b, i + 1, f"note {i}" if i % 3 else None)
            for i in range(count)
        ]
        path = tmp_path / "out.json"
        codec.save(bookmarks, path)
        result = codec.load(path)
        assert result.ok
        assert result.value == bookmarks

    def test_stale_file_skipped(self, codec, notices, tmp_path, project, file_a, file_b):
        gone = project / "src" / "gone.py"
        gone.write_text("x\n")
        path = tmp_path / "out.json"
        codec.save([_bm(file_a, 1), _bm(str(gone), 1), _bm(file_b, 2)], path)
        gone.unlink()

        result = codec.load(path)
        assert [b.file for b in result.value] == [file_a, file_b]
        warnings = notices.at(logging.WARNING)
        assert len(warnings) == 1
        assert warnings[0].startswith("File not found, skipping bookmark:")

    def test_missing_file(self, codec, notices, tmp_path):
        result = codec.load(tmp_path / "absent.json")
        assert result.ok and result.value == []
        assert notices == []

    @pytest.mark.parametrize("content", ["{not json", "[1, 2]", '"text"'])
    def test_unreadable_content(self, codec, tmp_path, content):
        path = tmp_path / "bad.json"
        path.write_text(content)
        result = codec.load(path)
        assert result.error is ErrorKind.DECODE
        assert result.value == []

    @pytest.mark.parametrize("version", [3, "2", True, 0, 2.0, 1.0])
    def test_unsupported_version_untouched(self, codec, tmp_path, version):
        path = tmp_path / "future.json"
        original = json.dumps({"format_version": version, "bookmarks": []}).encode()
        path.write_bytes(original)

        result = codec.load(path)
        assert result.error is ErrorKind.DECODE
        assert "Unsupported format version" in result.message
        assert path.read_bytes() == original
        assert list(tmp_path.glob("*.backup")) == []

    def test_legacy_version_key(self, codec, tmp_path, file_a):
        path = tmp_path / "legacy.json"
        path.write_text(
            json.dumps(
                {"version": 2, "bookmarks": [{"file": file_a, "line": 1, "id": "a1"}]}
            )
        )
        result = codec.load(path)
        assert [b.id for b in result.value] == ["a1"]
        assert list(tmp_path.glob("*.backup")) == []

    def test_stored_root_preferred(self, tmp_path, project, file_a):
        path = tmp_path / "doc.json"
        path.write_text(
            json.dumps(
                {
                    "format_version": 2,
                    "project": {"root": str(project), "root_absolute": str(project)},
                    "bookmarks": [{"file": "src/a.py", "line": 3, "id": "r1"}],
                }
            )
        )
        elsewhere = tmp_path / "elsewhere"
        elsewhere.mkdir()
        codec = BookmarkCodec(RootDetector(NO_MARKERS, cwd=str(elsewhere)))
        assert [b.file for b in codec.load(path).value] == [file_a]

    def test_backup_path_fallback(self, codec, tmp_path, file_a):
        path = tmp_path / "doc.json"
        path.write_text(
            json.dumps(
                {
                    "format_version": 2,
                    "bookmarks": [
                        {"file": "moved/a.py", "file_absolute": file_a, "line": 2, "id": "b1"}
                    ],
                }
            )
        )
        assert [b.file for b in codec.load(path).value] == [file_a]

    def test_raw_path_last_resort(self, tmp_path, project, file_a, monkeypatch):
        monkeypatch.chdir(project)
        elsewhere = tmp_path / "elsewhere"
        elsewhere.mkdir()
        path = tmp_path / "doc.json"
        path.write_text(
            json.dumps(
                {"format_version": 2, "bookmarks": [{"file": "src/a.py", "line": 1, "id": "c1"}]}
            )
        )
        codec = BookmarkCodec(RootDetector(NO_MARKERS, cwd=str(elsewhere)))
        assert [b.file for b in codec.load(path).value] == [file_a]

    def test_malformed_records_skipped(self, codec, notices, tmp_path, file_a):
        path = tmp_path / "doc.json"
        path.write_text(
            json.dumps(
                {
                    "format_version": 2,
                    "bookmarks": [
                        "junk",
                        {"file": file_a, "line": "x", "id": "bad"},
                        {"file": file_a, "line": 5, "id": "good"},
                    ],
                }
            )
        )
        result = codec.load(path)
        assert [b.id for b in result.value] == ["good"]
        assert any("malformed" in m for m in notices.at(logging.WARNING))


# -- Migration ---------------------------------------------------------------


def _v1_bytes(file_a: str, file_b: str) -> bytes:
    # Hand-formatted to check the backup keeps the exact bytes
    return (
        '{"version": 1,\n'
        '  "bookmarks": [\n'
        f'    {{"file": "{file_a}", "line": 2, "note": "first", "id": "aaaa1111"}},\n'
        f'    {{"file": "{file_b}", "line": 7, "note": null, "id": "bbbb2222"}}\n'
        "  ]}\r\n"
    ).encode("utf-8")


class TestMigration:
    def test_v1_upgraded_with_backup(self, codec, notices, tmp_path, project, file_a, file_b):
        path = tmp_path / "old.json"
        original = _v1_bytes(file_a, file_b)
        path.write_bytes(original)

        result = codec.load(path)

        assert result.ok
        assert [(b.id, b.file, b.line, b.note) for b in result.value] == [
            ("aaaa1111", file_a, 2, "first"),
            ("bbbb2222", file_b, 7, None),
        ]

        backup = tmp_path / "old.json.v1.backup"
        assert backup.read_bytes() == original

        doc = _read(path)
        assert doc["format_version"] == 2
        assert doc["metadata"]["migrated_from"] == "v1"
        assert doc["project"]["root_absolute"] == str(project)
        assert [b["file"] for b in doc["bookmarks"]] == ["src/a.py", "src/b.py"]
        assert [b["id"] for b in doc["bookmarks"]] == ["aaaa1111", "bbbb2222"]

        infos = notices.at(logging.INFO)
        assert infos[0] == "Migrating bookmarks from v1 to v2 format..."
        assert infos[1].startswith("Old format backed up to:")

    def test_document_without_version_is_v1(self, codec, tmp_path, file_a):
        path = tmp_path / "old.json"
        path.write_text(json.dumps({"bookmarks": [{"file": file_a, "line": 1, "id": "x"}]}))
        codec.load(path)
        assert _read(path)["format_version"] == 2
        assert (tmp_path / "old.json.v1.backup").exists()

    def test_null_version_is_v1(self, codec, tmp_path, file_a):
        path = tmp_path / "old.json"
        records = [{"file": file_a, "line": 1, "id": "x"}]
        path.write_text(json.dumps({"format_version": None, "bookmarks": records}))
        result = codec.load(path)
        assert [b.id for b in result.value] == ["x"]
        assert _read(path)["format_version"] == 2
        assert (tmp_path / "old.json.v1.backup").exists()

    def test_second_load_does_not_migrate_again(self, codec, tmp_path, file_a, file_b):
        path = tmp_path / "old.json"
        path.write_bytes(_v1_bytes(file_a, file_b))
        codec.load(path)
        backup = tmp_path / "old.json.v1.backup"
        stamp = os.stat(backup).st_mtime_ns
        assert len(codec.load(path).value) == 2
        assert os.stat(backup).st_mtime_ns == stamp

    def test_backup_failure_leaves_original(self, codec, notices, tmp_path, file_a, file_b):
        path = tmp_path / "old.json"
        original = _v1_bytes(file_a, file_b)
        path.write_bytes(original)
        (tmp_path / "old.json.v1.backup").mkdir()

        result = codec.load(path)

        assert result.ok
        assert len(result.value) == 2
        assert path.read_bytes() == original
        assert any("Original file left unchanged" in m for m in notices.at(logging.ERROR))
