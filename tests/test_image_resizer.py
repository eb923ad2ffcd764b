import io

import pytest
from PIL import Image

from fakes import make_image_bytes
from services.image_resizer import ImageResizer, MAX_WIDTH


def dimensions(data: bytes):
    with Image.open(io.BytesIO(data)) as img:
        return img.size


def test_small_image_passes_through_unchanged():
    data = make_image_bytes(800, 600)
    result = ImageResizer().resize(data, "small.jpg", "image/jpeg")
    assert result.data is data
    assert result.was_compressed is False
    assert result.original_size == result.new_size == len(data)
    assert result.content_type == "image/jpeg"


def test_wide_image_is_scaled_to_max_width_keeping_aspect_ratio():
    data = make_image_bytes(3840, 2160)
    result = ImageResizer().resize(data, "wide.jpg", "image/jpeg")
    assert dimensions(result.data) == (MAX_WIDTH, 1080)
    assert result.was_compressed is True
    assert result.new_size <= 2 * 1024 * 1024


def test_byte_limit_alone_triggers_recompression_without_scaling():
    data = make_image_bytes(400, 300, noise=True, quality=100)
    resizer = ImageResizer(max_bytes=len(data) - 1)
    result = resizer.resize(data, "noisy.jpg", "image/jpeg")
    assert dimensions(result.data) == (400, 300)
    assert result.was_compressed is True
    assert result.new_size < len(data)


def test_quality_floor_stops_retries(monkeypatch):
    qualities = []
    original = ImageResizer._encode

    def spy(img, fmt, quality):
        qualities.append(quality)
        return original(img, fmt, quality)

    monkeypatch.setattr(ImageResizer, "_encode", staticmethod(spy))
    data = make_image_bytes(300, 200)
    result = ImageResizer(max_bytes=1).resize(data, "x.jpg", "image/jpeg")

    assert qualities == [90, 80, 70, 60, 50]
    # Still above the target; accepted rather than rejected.
    assert result.new_size > 1


def test_attempt_cap_stops_retries(monkeypatch):
    qualities = []
    original = ImageResizer._encode

    def spy(img, fmt, quality):
        qualities.append(quality)
        return original(img, fmt, quality)

    monkeypatch.setattr(ImageResizer, "_encode", staticmethod(spy))
    ImageResizer(max_bytes=1, min_quality=0, max_attempts=2).resize(make_image_bytes(300, 200), "x.jpg", "image/jpeg")
    assert qualities == [90, 80, 70]


def test_transparent_png_keeps_format():
    img = Image.new("RGBA", (2000, 100), (255, 0, 0, 128))
    out = io.BytesIO()
    img.save(out, format="PNG")
    result = ImageResizer().resize(out.getvalue(), "alpha.png", "image/png")
    assert result.content_type == "image/png"
    with Image.open(io.BytesIO(result.data)) as resized:
        assert resized.format == "PNG"
        assert resized.width == MAX_WIDTH


def test_unknown_content_type_is_detected():
    data = make_image_bytes(50, 50, fmt="PNG")
    result = ImageResizer().resize(data, "upload", "application/octet-stream")
    assert result.content_type == "image/png"


def test_invalid_bytes_raise_value_error():
    with pytest.raises(ValueError):
        ImageResizer().resize(b"not an image", "bad.jpg", "image/jpeg")


@pytest.mark.asyncio
async def test_resize_many_keeps_order():
    files = [(make_image_bytes(2500, 100), "a.jpg", "image/jpeg"), (make_image_bytes(10, 10), "b.jpg", "image/jpeg")]
    results = await ImageResizer().resize_many(files)
    assert [r.filename for r in results] == ["a.jpg", "b.jpg"]
    assert [r.was_compressed for r in results] == [True, False]
