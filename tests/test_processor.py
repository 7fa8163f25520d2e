"""Tests for the image fingerprinting module."""

import hashlib

import pytest

from processor.fingerprint import ImageInfo, compute_sha256, measure_image
from tests.fixtures import make_image


class TestComputeSha256:
    def test_matches_hashlib(self) -> None:
        assert compute_sha256(b"badge") == hashlib.sha256(b"badge").hexdigest()

    def test_identical_bytes_identical_hash(self) -> None:
        red = make_image(88, 31, "red")
        assert compute_sha256(red) == compute_sha256(make_image(88, 31, "red"))
        assert compute_sha256(red) != compute_sha256(make_image(88, 31, "blue"))


class TestMeasureImage:
    """Test measure_image."""

    @pytest.mark.parametrize("image_format", ["PNG", "GIF", "JPEG"])
    def test_reads_size_and_lowercase_format(self, image_format: str) -> None:
        info = measure_image(make_image(88, 31, image_format=image_format))

        assert info == ImageInfo(width=88, height=31, format=image_format.lower())

    def test_other_sizes(self) -> None:
        assert measure_image(make_image(468, 60)) == ImageInfo(468, 60, "png")

    @pytest.mark.parametrize("content", [b"", b"not an image", b"<html></html>"])
    def test_unreadable_bytes(self, content: bytes) -> None:
        assert measure_image(content) is None
