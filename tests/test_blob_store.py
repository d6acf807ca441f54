"""Tests for the blob stores."""

import os
import stat

import pytest

from secretstore.blob_store import JSONFileBlobStore, MemoryBlobStore


class TestMemoryBlobStore:
    def test_set_get_delete(self):
        blobs = MemoryBlobStore()
        assert blobs.get("k") is None
        blobs.set("k", b"value")
        assert blobs.get("k") == b"value"
        blobs.delete("k")
        assert blobs.get("k") is None

    def test_delete_missing_is_noop(self):
        MemoryBlobStore().delete("missing")


class TestJSONFileBlobStore:
    def test_creates_directory(self, tmp_path):
        directory = tmp_path / "nested" / "store"
        JSONFileBlobStore(str(directory))
        assert directory.is_dir()

    def test_set_get(self, tmp_path):
        blobs = JSONFileBlobStore(str(tmp_path))
        blobs.set("credentials", b"[]")
        assert blobs.get("credentials") == b"[]"
        assert (tmp_path / "credentials.json").read_bytes() == b"[]"

    def test_survives_reopen(self, tmp_path):
        JSONFileBlobStore(str(tmp_path)).set("groups", b'[{"x": 1}]')
        assert JSONFileBlobStore(str(tmp_path)).get("groups") == b'[{"x": 1}]'

    def test_backup_of_previous_version(self, tmp_path):
        blobs = JSONFileBlobStore(str(tmp_path))
        blobs.set("credentials", b"v1")
        assert not (tmp_path / "credentials.json.bak").exists()
        blobs.set("credentials", b"v2")
        assert (tmp_path / "credentials.json.bak").read_bytes() == b"v1"
        assert blobs.get("credentials") == b"v2"

    def test_no_temp_files_left(self, tmp_path):
        blobs = JSONFileBlobStore(str(tmp_path))
        blobs.set("a", b"1")
        blobs.set("a", b"2")
        assert sorted(os.listdir(tmp_path)) == ["a.json", "a.json.bak"]

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permissions")
    def test_file_is_private(self, tmp_path):
        blobs = JSONFileBlobStore(str(tmp_path))
        blobs.set("credentials", b"[]")
        mode = stat.S_IMODE((tmp_path / "credentials.json").stat().st_mode)
        assert mode == 0o600

    def test_missing_key(self, tmp_path):
        assert JSONFileBlobStore(str(tmp_path)).get("nothing") is None

    def test_delete(self, tmp_path):
        blobs = JSONFileBlobStore(str(tmp_path))
        blobs.set("k", b"v")
        blobs.delete("k")
        assert blobs.get("k") is None
        blobs.delete("k")

    @pytest.mark.parametrize("key", ["", ".hidden", "a/b"])
    def test_invalid_keys(self, tmp_path, key):
        with pytest.raises(ValueError):
            JSONFileBlobStore(str(tmp_path)).set(key, b"x")
