from pathlib import Path

import pytest

from app.core.exceptions import BadRequestError
from app.services.file_service import FileService

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


@pytest.fixture
def alice(register, login) -> dict:
    register("alice")
    return login("alice")


class TestUpload:
    def test_upload_png(self, client, alice, settings):
        response = client.post(
            "/upload", files={"file": ("photo.png", PNG, "image/png")}, headers=alice
        )

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "File uploaded successfully"
        assert body["data"]["size"] == len(PNG)
        filename = body["data"]["filename"]
        assert filename.endswith(".png")
        assert (Path(settings.upload_dir) / filename).read_bytes() == PNG

    def test_uploaded_file_can_be_downloaded(self, client, alice):
        filename = client.post(
            "/upload", files={"file": ("doc.pdf", b"%PDF-1.4", "application/pdf")}, headers=alice
        ).json()["data"]["filename"]

        response = client.get(f"/upload/{filename}", headers=alice)
        assert response.status_code == 200
        assert response.content == b"%PDF-1.4"

    def test_disallowed_extension(self, client, alice):
        response = client.post(
            "/upload", files={"file": ("run.exe", b"MZ", "image/png")}, headers=alice
        )
        assert response.status_code == 400
        assert response.json()["message"] == "File type not allowed"

    def test_content_type_must_be_image_or_pdf(self, client, alice):
        response = client.post(
            "/upload", files={"file": ("photo.png", PNG, "text/plain")}, headers=alice
        )
        assert response.status_code == 400
        assert response.json()["message"] == "File must be an image or PDF"

    def test_oversized_file(self, client, alice):
        big = b"\x00" * (5 * 1024 * 1024 + 1)
        response = client.post(
            "/upload", files={"file": ("big.png", big, "image/png")}, headers=alice
        )
        assert response.status_code == 400
        assert response.json()["message"] == "File size exceeds the limit of 5MB"

    def test_missing_file_field(self, client, alice):
        response = client.post("/upload", files={"other": ("a.png", PNG, "image/png")}, headers=alice)
        assert response.status_code == 400

    def test_upload_requires_token(self, client):
        response = client.post("/upload", files={"file": ("photo.png", PNG, "image/png")})
        assert response.status_code == 401


class TestDownload:
    def test_unknown_file(self, client, alice):
        response = client.get("/upload/nothing.png", headers=alice)
        assert response.status_code == 404
        assert response.json()["message"] == "File not found"

    @pytest.mark.parametrize("name", ["..", "../secret.png", "a/b.png", ""])
    def test_path_like_names_are_rejected(self, settings, name):
        with pytest.raises(BadRequestError, match="Invalid filename"):
            FileService(settings).resolve(name)


class TestProfilePicture:
    def test_profile_picture_is_stored_on_the_user(self, client, alice, context):
        user_id = context.tokens.authenticate(alice["Authorization"]).user_id

        response = client.post(
            "/upload/profile_picture",
            files={"profile_picture": ("me.jpg", b"\xff\xd8\xff", "image/jpeg")},
            headers=alice,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Profile picture uploaded successfully"
        url = body["data"]["profile_picture"]
        assert url.startswith("/uploads/") and url.endswith(".jpg")

        user = client.get(f"/users/{user_id}", headers=alice).json()["data"]
        assert user["profile_picture"] == url

    def test_profile_picture_rejects_bad_type(self, client, alice):
        response = client.post(
            "/upload/profile_picture",
            files={"profile_picture": ("me.gif", b"GIF89a", "image/gif")},
            headers=alice,
        )
        assert response.status_code == 400


def test_profile_picture_for_deleted_user_leaves_no_file(client, register, login, settings):
    user_id = register("ghost")
    headers = login("ghost")
    client.delete(f"/users/{user_id}", headers=headers)

    response = client.post(
        "/upload/profile_picture",
        files={"profile_picture": ("me.jpg", b"\xff\xd8\xff", "image/jpeg")},
        headers=headers,
    )

    assert response.status_code == 404
    upload_dir = Path(settings.upload_dir)
    assert not upload_dir.exists() or not any(upload_dir.iterdir())
