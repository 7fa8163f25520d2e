"""Tests for content-addressed blob storage."""

from pathlib import Path

import pytest

from processor.fingerprint import compute_sha256
from storage.blobs import BlobStore
from storage.button_store import StoreError


class TestBlobStore:
    """Test BlobStore."""

    def test_write_and_read(self, blob_store: BlobStore, badge_png: bytes) -> None:
        sha256_hash = compute_sha256(badge_png)
        path = blob_store.write(sha256_hash, badge_png)

        assert path.name == sha256_hash
        assert blob_store.exists(sha256_hash)
        assert blob_store.read(sha256_hash) == badge_png
        with blob_store.open(sha256_hash) as f:
            assert f.read() == badge_png

    def test_no_temp_files_left_behind(self, blob_store: BlobStore, badge_png: bytes) -> None:
        sha256_hash = compute_sha256(badge_png)
        blob_store.write(sha256_hash, badge_png)

        assert [p.name for p in blob_store.root.iterdir()] == [sha256_hash]

    def test_existing_blob_is_not_rewritten(self, blob_store: BlobStore, badge_png: bytes) -> None:
        sha256_hash = compute_sha256(badge_png)
        blob_store.write(sha256_hash, badge_png)
        blob_store.write(sha256_hash, b"different bytes")

        assert blob_store.read(sha256_hash) == badge_png

    @pytest.mark.parametrize("bad_hash", ["", "../etc/passwd", "ABCDEF", "a/b"])
    def test_rejects_non_hex_names(self, blob_store: BlobStore, bad_hash: str) -> None:
        with pytest.raises(ValueError):
            blob_store.path_for(bad_hash)

    def test_read_missing_blob(self, blob_store: BlobStore) -> None:
        with pytest.raises(FileNotFoundError):
            blob_store.read("0" * 64)

    def test_unwritable_root_raises_store_error(self, tmp_path: Path) -> None:
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("file in the way")
        store = BlobStore(blocker / "buttons")

        with pytest.raises(StoreError):
            store.write("0" * 64, b"data")
