"""End-to-end checks of the upload flow on realistic inputs."""

import io
import sys

from PIL import Image

sys.path.append('src')

from attachment_utils import build_upload_files, prepare_attachments
from config import Config
from image_compression_utils import MB, compress_image
from image_models import SourceImage


def test_large_camera_photo_is_capped_and_fits_budget(make_image):
    """A 6000x4000, 8 MB JPEG lands in the 1200px tier."""
    data = make_image(6000, 4000, noise=False)
    # Pad past the end-of-image marker so the file weighs 8 MB like a real camera shot
    data += b"\x00" * (8 * MB - len(data))
    budget = 500 * 1024

    attempts = []
    result = compress_image(data, "image/jpeg", "IMG_0001.jpg", budget, on_attempt=attempts.append)

    assert (result.width, result.height) == (1200, 800)
    assert Image.open(io.BytesIO(result.data)).size == (1200, 800)
    assert result.mime_type == "image/jpeg"
    assert result.file_name == "IMG_0001.jpg"
    assert result.byte_size <= budget
    assert not result.shortfall
    assert attempts[0].tried_quality == 0.9


def test_small_png_is_forwarded_unchanged(small_png):
    prepared = prepare_attachments([SourceImage(small_png, "image/png", "screenshot.png")], Config())

    [attachment] = prepared.attachments
    assert attachment.data == small_png
    assert attachment.mime_type == "image/png"
    assert attachment.attempts == 0


def test_corrupted_file_does_not_affect_siblings(make_image):
    config = Config(budget_bytes=100 * 1024)
    sources = [
        SourceImage(b"\xff\xd8\xff\xe0" + b"\x13" * 200_000, "image/jpeg", "corrupted.jpg"),
        SourceImage(make_image(500, 500), "image/jpeg", "witness.jpg"),
    ]

    prepared = prepare_attachments(sources, config)

    assert prepared.failed_names() == ("corrupted.jpg",)
    assert prepared.failures[0].kind == "decode_failed"
    files = build_upload_files(prepared.attachments)
    assert [field for field, _ in files] == ["image_1"]
    assert files[0][1][0] == "witness.jpg"


def test_compression_always_terminates_within_bounds(make_image):
    for seed, (width, height) in enumerate([(900, 600), (600, 900), (1000, 1000)]):
        data = make_image(width, height, seed=seed)
        result = compress_image(data, "image/jpeg", f"{seed}.jpg", 30 * 1024)

        assert result.width <= width and result.height <= height
        assert result.byte_size <= 30 * 1024 or result.attempts == 10 or result.quality == 0.1
