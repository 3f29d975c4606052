import io

from PIL import Image

from fieldhub.services.images import shrink_photo


def _noisy_png(width, height):
    buf = io.BytesIO()
    Image.effect_noise((width, height), 64).convert("RGB").save(buf, format="PNG")
    return buf.getvalue()


def test_large_photo_is_resized_to_jpeg():
    original = _noisy_png(3000, 2000)
    content, is_jpeg = shrink_photo(original, max_dim=1600)
    assert is_jpeg
    assert len(content) < len(original)
    img = Image.open(io.BytesIO(content))
    assert img.format == "JPEG"
    assert img.width == 1600
    assert 1066 <= img.height <= 1067


def test_non_image_is_kept():
    assert shrink_photo(b"not a photo") == (b"not a photo", False)
    assert shrink_photo(b"") == (b"", False)


def test_avatar_upload_is_shrunk(client, technician, headers_for, storage):
    resp = client.post(
        "/auth/me/avatar",
        files={"file": ("me.png", _noisy_png(1200, 1200), "image/png")},
        headers=headers_for(technician),
    )
    assert resp.status_code == 200
    url = resp.json()["avatar_url"]
    assert url.endswith(".jpg")
    key = url.split("/files/local/", 1)[1]
    stored = Image.open(storage.resolve(key))
    assert max(stored.size) == 512
