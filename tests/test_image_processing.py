"""Tests for upload decoding and image preparation."""

import base64

import pytest

from conftest import make_image, png_base64, png_bytes
from image_processing import (
    ImagePayloadError,
    analyse_image_quality,
    decode_image_base64,
    downscale,
    is_pdf,
    load_roster_image,
    open_image,
)


def test_plain_base64_decodes():
    data = decode_image_base64(png_base64())
    assert data.startswith(b"\x89PNG")


def test_data_url_prefix_and_line_breaks_are_ignored():
    body = png_base64()
    wrapped = "\n".join(body[i:i + 60] for i in range(0, len(body), 60))
    assert decode_image_base64("data:image/png;base64," + wrapped) == base64.b64decode(body)


@pytest.mark.parametrize("payload", [None, "", "   ", "data:image/png;base64,"])
def test_missing_image_is_400(payload):
    with pytest.raises(ImagePayloadError) as exc:
        decode_image_base64(payload)
    assert exc.value.status == 400


def test_invalid_base64_is_400():
    with pytest.raises(ImagePayloadError) as exc:
        decode_image_base64("not*base64!")
    assert exc.value.status == 400


def test_oversize_image_is_413():
    payload = base64.b64encode(b"x" * 2048).decode()
    with pytest.raises(ImagePayloadError) as exc:
        decode_image_base64(payload, max_bytes=1024)
    assert exc.value.status == 413


def test_pdf_sniffing():
    assert is_pdf(b"%PDF-1.7\n...")
    assert not is_pdf(png_bytes(make_image()))


def test_garbage_bytes_cannot_be_opened():
    with pytest.raises(ImagePayloadError):
        open_image(b"definitely not an image")


def test_large_images_are_downscaled_keeping_aspect():
    img = downscale(make_image(3000, 1000), 2048)
    assert img.size == (2048, 683)


def test_small_images_are_left_alone():
    assert downscale(make_image(800, 600), 2048).size == (800, 600)


def test_rgba_is_converted():
    assert downscale(make_image().convert("RGBA")).mode == "RGB"


def test_quality_profile_of_flat_image():
    profile = analyse_image_quality(make_image(100, 50))
    assert (profile["width"], profile["height"]) == (100, 50)
    assert profile["is_blurry"] is True
    assert profile["is_low_contrast"] is True


@pytest.mark.asyncio
async def test_load_roster_image_from_png():
    img = await load_roster_image(png_bytes(make_image(4000, 2000)), max_dimension=1000)
    assert img.size == (1000, 500)

