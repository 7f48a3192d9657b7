import io
from pathlib import Path

import pytest
from PIL import Image

from src.uploads.routes import allowed_file, thumbnail_name


@pytest.fixture
def headers(register):
    return register("Alice")["headers"]


def image_file(size=(800, 600), fmt="JPEG", color=(200, 30, 30)):
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, fmt)
    buffer.seek(0)
    return buffer


def upload(client, headers, *files):
    return client.post(
        "/api/uploads/photos",
        data={"photos": list(files)},
        headers=headers,
        content_type="multipart/form-data",
    )


# --- Tests for helpers ---


def test_allowed_file():
    assert allowed_file("holiday.JPG")
    assert allowed_file("scan.webp")
    assert not allowed_file("notes.txt")
    assert not allowed_file("no_extension")


def test_thumbnail_name():
    assert thumbnail_name("garden_1a2b3c4d.png") == "garden_1a2b3c4d_thumb.jpg"


# --- Tests for the upload route ---


def test_upload_photo(client, headers, config):
    response = upload(client, headers, (image_file(), "Front Door.jpg"))
    assert response.status_code == 200
    data = response.get_json()
    assert data["success"] is True
    assert data["count"] == 1

    photo = data["uploaded"][0]
    assert photo["original_name"] == "Front Door.jpg"
    assert photo["filename"].startswith("Front_Door_")
    assert photo["filename"].endswith(".jpg")
    assert photo["url"] == f"/api/uploads/{photo['filename']}"

    uploads = Path(config.get("uploads.directory"))
    assert (uploads / photo["filename"]).is_file()
    thumbnail = uploads / "thumbnails" / thumbnail_name(photo["filename"])
    with Image.open(thumbnail) as img:
        assert max(img.size) == config.get("uploads.thumbnail_size")


def test_large_photo_is_scaled_down(client, headers, config):
    config.config["uploads"]["max_edge"] = 500
    response = upload(client, headers, (image_file(size=(1200, 900), fmt="PNG"), "big.png"))
    photo = response.get_json()["uploaded"][0]
    with Image.open(Path(config.get("uploads.directory")) / photo["filename"]) as img:
        assert img.size == (500, 375)


def test_large_animated_gif_is_scaled_down(client, headers, config):
    config.config["uploads"]["max_edge"] = 500
    buffer = io.BytesIO()
    frames = [Image.new("RGB", (1200, 900), color) for color in ((200, 30, 30), (30, 30, 200))]
    frames[0].save(buffer, "GIF", save_all=True, append_images=frames[1:], duration=100, loop=0)
    buffer.seek(0)

    response = upload(client, headers, (buffer, "wave.gif"))
    photo = response.get_json()["uploaded"][0]
    with Image.open(Path(config.get("uploads.directory")) / photo["filename"]) as img:
        assert img.format == "GIF"
        assert img.size == (500, 375)
        assert img.n_frames == 2


def test_rejected_files_are_reported(client, headers, config):
    config.config["uploads"]["max_file_size"] = 2 * 1024 * 1024
    response = upload(
        client,
        headers,
        (image_file(), "ok.jpg"),
        (io.BytesIO(b"just text"), "notes.txt"),
        (io.BytesIO(b"not an image"), "broken.png"),
        (io.BytesIO(b"x" * (3 * 1024 * 1024)), "huge.jpg"),
    )
    data = response.get_json()
    assert data["count"] == 1
    assert data["errors"] == [
        "Invalid file type: notes.txt. Allowed: gif, jpeg, jpg, png, webp",
        "Unable to process broken.png",
        "File too large: huge.jpg. Max size: 2MB",
    ]
    stored = [p.name for p in Path(config.get("uploads.directory")).glob("*.png")]
    assert stored == []


def test_upload_without_photos(client, headers):
    response = client.post(
        "/api/uploads/photos", data={}, headers=headers, content_type="multipart/form-data"
    )
    assert response.status_code == 400
    assert response.get_json()["error"] == "No photos provided"


def test_upload_requires_session(client):
    response = upload(client, {}, (image_file(), "photo.jpg"))
    assert response.status_code == 401


def test_upload_rate_limit(client, headers):
    from src.auth.tokens import RateLimiter, rate_limiters

    rate_limiters["upload"] = RateLimiter(per_minute=1, per_hour=10)
    assert upload(client, headers, (image_file(), "one.jpg")).status_code == 200
    assert upload(client, headers, (image_file(), "two.jpg")).status_code == 429


# --- Tests for serving and deleting ---


def test_get_and_delete_photo(client, headers):
    photo = upload(client, headers, (image_file(), "cat.jpg")).get_json()["uploaded"][0]

    response = client.get(photo["url"], headers=headers)
    assert response.status_code == 200
    assert response.mimetype == "image/jpeg"

    response = client.get(photo["thumbnail_url"], headers=headers)
    assert response.status_code == 200

    response = client.delete(photo["url"], headers=headers)
    assert response.get_json() == {
        "success": True,
        "message": f"Photo {photo['filename']} deleted",
    }
    assert client.get(photo["url"], headers=headers).status_code == 404
    assert client.get(photo["thumbnail_url"], headers=headers).status_code == 404
    assert client.delete(photo["url"], headers=headers).status_code == 404


def test_only_uploader_deletes_photo(client, headers, register, config):
    photo = upload(client, headers, (image_file(), "cat.jpg")).get_json()["uploaded"][0]
    bob = register("Bob")["headers"]

    response = client.delete(photo["url"], headers=bob)
    assert response.status_code == 403
    assert (Path(config.get("uploads.directory")) / photo["filename"]).is_file()

    assert client.delete(photo["url"], headers=headers).status_code == 200
