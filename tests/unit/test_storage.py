"""Unit tests for local file storage."""
from __future__ import annotations

import io
import re

import pytest

from image_catalog.core.exceptions import StorageException
from image_catalog.services.storage_service import (
    LocalStorageService,
    check_magic_number,
    sanitize_filename,
)
from tests.factories import JPEG_BYTES, PNG_BYTES, WEBP_BYTES


class TestLocalStorage:
    """Test LocalStorageService."""

    def test_store_and_retrieve(self, storage: LocalStorageService):
        path = storage.store("Sunset Photo.png", "image/png", PNG_BYTES, len(PNG_BYTES))

        assert re.fullmatch(r"[0-9a-f]{2}/[0-9a-f]{2}/Sunset_Photo_[0-9a-f]{12}\.png", path)
        assert storage.exists(path)
        with storage.retrieve(path) as f:
            assert f.read() == PNG_BYTES

    def test_store_from_stream(self, storage: LocalStorageService):
        path = storage.store("photo.jpg", "image/jpeg", io.BytesIO(JPEG_BYTES))

        assert storage.get_file_info(path).size == len(JPEG_BYTES)

    def test_same_name_gets_distinct_paths(self, storage: LocalStorageService):
        first = storage.store("a.png", "image/png", PNG_BYTES)
        second = storage.store("a.png", "image/png", PNG_BYTES)

        assert first != second

    def test_webp_requires_webp_tag(self, storage: LocalStorageService):
        storage.store("a.webp", "image/webp", WEBP_BYTES)

        riff_wave = b"RIFF\x24\x00\x00\x00WAVEfmt " + b"\x00" * 48
        with pytest.raises(StorageException):
            storage.store("a.webp", "image/webp", riff_wave)

    @pytest.mark.parametrize(
        "filename, content_type, data",
        [
            ("a.png", "image/png", b""),
            ("a.png", "image/png", JPEG_BYTES),
            ("a.jpg", "image/png", PNG_BYTES),
            ("a", "image/png", PNG_BYTES),
            ("a.png", "application/pdf", PNG_BYTES),
            ("../escape.png", "image/png", PNG_BYTES),
            ("", "image/png", PNG_BYTES),
        ],
    )
    def test_rejected_files(self, storage, filename, content_type, data):
        with pytest.raises(StorageException):
            storage.store(filename, content_type, data)

    def test_declared_size_must_match(self, storage: LocalStorageService):
        with pytest.raises(StorageException):
            storage.store("a.png", "image/png", PNG_BYTES, len(PNG_BYTES) + 1)

    def test_max_file_size(self, tmp_path):
        small = LocalStorageService(tmp_path, "http://test/files", max_file_size=10)

        with pytest.raises(StorageException):
            small.store("a.png", "image/png", PNG_BYTES)

    def test_delete_is_idempotent(self, storage: LocalStorageService):
        path = storage.store("a.png", "image/png", PNG_BYTES)

        storage.delete(path)
        storage.delete(path)

        assert not storage.exists(path)

    def test_retrieve_missing_file(self, storage: LocalStorageService):
        with pytest.raises(StorageException):
            storage.retrieve("00/00/missing.png")

    @pytest.mark.parametrize("path", ["../outside.png", "/etc/passwd", ""])
    def test_paths_outside_root_are_refused(self, storage, path):
        with pytest.raises(StorageException):
            storage.exists(path)

    def test_generate_url(self, storage: LocalStorageService):
        url = storage.generate_url("ab/cd/my photo.png", 60)

        assert url.startswith("http://test/files/ab/cd/my%20photo.png?expires=")

    def test_file_info(self, storage: LocalStorageService):
        path = storage.store("a.png", "image/png", PNG_BYTES)
        info = storage.get_file_info(path)

        assert info.path == path
        assert info.content_type == "image/png"
        assert len(info.etag) == 32


class TestHelpers:
    def test_sanitize_filename(self):
        assert sanitize_filename("my photo (1)") == "my_photo_1"
        assert sanitize_filename("...") == "image"
        assert len(sanitize_filename("x" * 500)) == 100

    def test_magic_number_too_short(self):
        with pytest.raises(StorageException):
            check_magic_number(b"\x89P", "image/png")

    def test_gif_variants(self):
        check_magic_number(b"GIF87a\x00\x00", "image/gif")
        check_magic_number(b"GIF89a\x00\x00", "image/gif")
