"""
Integration tests for product image hosting.

Tests cover:
- Files under App_Data/Images served at /images
- Paths escaping the image directory are not served
- Non-GET requests and unknown files fall through to the API
"""

from fastapi.testclient import TestClient

from electronic_api.main import create_app


class TestStaticImages:

    def test_image_directory_created_at_startup(self, settings):
        assert not settings.images_path.exists()

        create_app(settings)

        assert settings.images_path.is_dir()

    def test_serves_file(self, client, settings):
        (settings.images_path / "tv.jpg").write_bytes(b"jpeg-bytes")

        response = client.get("/images/tv.jpg")

        assert response.status_code == 200
        assert response.content == b"jpeg-bytes"
        assert response.headers["content-type"] == "image/jpeg"

    def test_head_request(self, client, settings):
        (settings.images_path / "tv.jpg").write_bytes(b"jpeg-bytes")

        response = client.head("/images/tv.jpg")

        assert response.status_code == 200
        assert response.headers["content-length"] == "10"

    def test_images_are_public(self, client, settings):
        (settings.images_path / "tv.jpg").write_bytes(b"jpeg-bytes")

        response = client.get("/images/tv.jpg", headers={"Authorization": "Bearer junk"})

        assert response.status_code == 200

    def test_missing_file_is_not_found(self, client):
        response = client.get("/images/missing.png")

        assert response.status_code == 404
        assert response.json()["detail"] == "Not Found"

    def test_traversal_outside_directory_refused(self, client, content_root):
        (content_root / "App_Data" / "secret.txt").write_text("top secret")

        response = client.get("/images/..%2fsecret.txt")

        assert response.status_code == 404
        assert "top secret" not in response.text

    def test_post_falls_through(self, client, settings):
        (settings.images_path / "tv.jpg").write_bytes(b"jpeg-bytes")

        response = client.post("/images/tv.jpg")

        assert response.status_code in (404, 405)

    def test_custom_request_path(self, make_settings):
        settings = make_settings(images_request_path="/media")
        app = create_app(settings)
        (settings.images_path / "tv.jpg").write_bytes(b"jpeg-bytes")

        with TestClient(app) as client:
            assert client.get("/media/tv.jpg").status_code == 200
            assert client.get("/images/tv.jpg").status_code == 404
