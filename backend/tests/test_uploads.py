"""Tests for image uploads."""
from pathlib import Path

import pytest

from supportchat.uploads.service import ImageStorageService

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


class TestImageStorageService:

    def test_save_image(self, tmp_path):
        service = ImageStorageService(upload_dir=str(tmp_path))

        url = service.save_image("cat.PNG", PNG_BYTES, "image/png")

        assert url.startswith("/uploads/image-")
        assert url.endswith(".png")
        stored = tmp_path / Path(url).name
        assert stored.read_bytes() == PNG_BYTES

    def test_names_are_unique(self, tmp_path):
        service = ImageStorageService(upload_dir=str(tmp_path))
        urls = {service.save_image("a.png", PNG_BYTES, "image/png") for _ in range(5)}
        assert len(urls) == 5

    def test_rejects_non_image(self, tmp_path):
        service = ImageStorageService(upload_dir=str(tmp_path))
        with pytest.raises(ValueError, match="Only image files are allowed!"):
            service.save_image("notes.txt", b"hello", "text/plain")

    def test_rejects_large_file(self, tmp_path):
        service = ImageStorageService(upload_dir=str(tmp_path), max_size_bytes=1024 * 1024)
        with pytest.raises(ValueError, match="Maximum size is 1MB"):
            service.save_image("big.png", b"\x00" * (1024 * 1024 + 1), "image/png")
        assert list(tmp_path.iterdir()) == []


class TestUploadEndpoint:

    def test_upload_and_serve(self, api_client, app_settings):
        response = api_client.post(
            "/api/upload",
            files={"image": ("photo.png", PNG_BYTES, "image/png")},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["imageUrl"].startswith("/uploads/image-")

        saved = Path(app_settings.uploads.directory) / Path(data["imageUrl"]).name
        assert saved.exists()

        served = api_client.get(data["imageUrl"])
        assert served.status_code == 200
        assert served.content == PNG_BYTES

    def test_non_image_is_rejected(self, api_client):
        response = api_client.post(
            "/api/upload",
            files={"image": ("notes.txt", b"hello", "text/plain")},
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Only image files are allowed!"

    def test_too_large_is_rejected(self, api_client):
        too_big = b"\x00" * (5 * 1024 * 1024 + 1)
        response = api_client.post(
            "/api/upload",
            files={"image": ("huge.png", too_big, "image/png")},
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "File too large. Maximum size is 5MB."

    def test_missing_file(self, api_client):
        assert api_client.post("/api/upload").status_code == 422
