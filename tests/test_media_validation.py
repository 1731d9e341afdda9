import base64

import pytest

from utils.errors import ValidationError
from utils.media_validation import (
    decode_base64_image,
    detect_image_mime,
    extension_for_mime,
    split_data_url,
    to_data_url,
)


def test_data_url_prefix_is_stripped_before_decoding(png_bytes: bytes, png_base64: str) -> None:
    assert decode_base64_image(f"data:image/png;base64,{png_base64}") == png_bytes


def test_plain_base64_decodes_to_original_bytes(png_bytes: bytes, png_base64: str) -> None:
    assert decode_base64_image(png_base64) == png_bytes


def test_decoding_tolerates_whitespace_and_missing_padding() -> None:
    raw = b"abcd1"
    encoded = base64.b64encode(raw).decode("ascii").rstrip("=")
    wrapped = encoded[:3] + "\n" + encoded[3:]

    assert decode_base64_image(wrapped) == raw


def test_split_data_url_reports_declared_mime() -> None:
    assert split_data_url("data:image/webp;base64,AAAA") == ("image/webp", "AAAA")
    assert split_data_url("AAAA") == (None, "AAAA")


@pytest.mark.parametrize("value", ["", "   ", "data:image/png;base64,", "not base64 at all!"])
def test_invalid_base64_is_rejected(value: str) -> None:
    with pytest.raises(ValidationError):
        decode_base64_image(value)


def test_detect_image_mime_sniffs_png(png_bytes: bytes) -> None:
    assert detect_image_mime(png_bytes, fallback="image/jpeg") == "image/png"


def test_detect_image_mime_rejects_non_images() -> None:
    with pytest.raises(ValidationError):
        detect_image_mime(b"%PDF-1.7 definitely not an image")


def test_extension_and_data_url_helpers(png_bytes: bytes) -> None:
    assert extension_for_mime("image/png") == ".png"
    assert extension_for_mime("image/jpeg; charset=binary") == ".jpg"
    assert extension_for_mime("application/octet-stream") == ".jpg"
    assert decode_base64_image(to_data_url(png_bytes, "image/png")) == png_bytes
