"""Shrink user images to fit an upload size budget.

The pipeline is split into steps that can be tested individually:
1. decode_image: bytes to pixels (JPEG, PNG, GIF first frame, WEBP)
2. select_max_dimension: pick a downscale cap from the original file size
3. resize_to_cap: proportional downscale, never an upscale
4. search_quality: re-encode with a descending quality until the budget fits

compress_image runs all four and is what the upload flow calls.
"""

import io
import threading
from typing import Callable, Optional, Sequence

from PIL import Image, ImageOps, UnidentifiedImageError

from compression_errors import CompressionCancelled, DecodeFailed, EncodeFailed
from image_models import CompressedImage, CompressionAttempt, DecodedRaster, Tier
from logger import get_logger

logger = get_logger(__name__)

KB = 1024
MB = 1024 * 1024

DEFAULT_BUDGET_BYTES = 500 * KB
DEFAULT_INITIAL_QUALITY = 0.9
DEFAULT_QUALITY_FLOOR = 0.1
DEFAULT_MAX_ATTEMPTS = 10

MIME_TO_FORMAT = {
    "image/jpeg": "JPEG",
    "image/png": "PNG",
    "image/gif": "GIF",
    "image/webp": "WEBP",
}
SUPPORTED_MIME_TYPES = tuple(MIME_TO_FORMAT)
SUPPORTED_FORMATS = tuple(MIME_TO_FORMAT.values())

# Largest threshold first; the last entry is the catch-all.
COMPRESSION_TIERS = (
    Tier(threshold_bytes=10 * MB, max_dimension=800),
    Tier(threshold_bytes=5 * MB, max_dimension=1200),
    Tier(threshold_bytes=2 * MB, max_dimension=1600),
    Tier(threshold_bytes=0, max_dimension=1920),
)

# (overshoot ratio, quality step), checked in order
QUALITY_STEPS = ((3, 0.20), (2, 0.15))
DEFAULT_QUALITY_STEP = 0.10

AttemptCallback = Callable[[CompressionAttempt], None]


def validate_tiers(tiers: Sequence[Tier]) -> None:
    """Check that thresholds strictly descend and the table is not empty.

    Raises:
        ValueError: If the table cannot resolve every size to one tier.
    """
    if not tiers:
        raise ValueError("Tier table must contain at least the catch-all tier")
    thresholds = [tier.threshold_bytes for tier in tiers]
    if any(later >= earlier for earlier, later in zip(thresholds, thresholds[1:])):
        raise ValueError(f"Tier thresholds must be strictly descending: {thresholds}")


validate_tiers(COMPRESSION_TIERS)


def target_mime_type(mime_type: str) -> str:
    """PNG is re-encoded as JPEG; every other supported type keeps its own encoder."""
    return "image/jpeg" if mime_type == "image/png" else mime_type


def _has_alpha(image: Image.Image) -> bool:
    return image.mode in ("RGBA", "LA", "PA") or "transparency" in image.info


def decode_image(data: bytes, mime_type: str, file_name: str) -> DecodedRaster:
    """Decode raw bytes into an RGB/RGBA raster.

    Only the first frame of animated images is kept and EXIF orientation is
    applied, so width and height are the dimensions the user actually sees.

    Args:
        data: Raw file contents.
        mime_type: Declared type; must be one of ``SUPPORTED_MIME_TYPES``.
        file_name: Used for error reporting only.

    Returns:
        The decoded raster.

    Raises:
        DecodeFailed: If the type is not supported or the bytes do not parse.
    """
    if mime_type not in MIME_TO_FORMAT:
        raise DecodeFailed(file_name, f"Unsupported image type {mime_type!r}: {file_name}")

    try:
        with Image.open(io.BytesIO(data), formats=SUPPORTED_FORMATS) as img:
            img.seek(0)
            img.load()
            image = ImageOps.exif_transpose(img)
            image = image.convert("RGBA" if _has_alpha(image) else "RGB")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError, EOFError) as e:
        raise DecodeFailed(file_name, f"Could not decode {file_name}: {e}") from e

    width, height = image.size
    return DecodedRaster(image=image, width=width, height=height)


def select_max_dimension(byte_size: int, tiers: Sequence[Tier] = COMPRESSION_TIERS) -> int:
    """Map the original file size to a cap on the longer side, in pixels.

    Bigger files get a smaller cap so the quality search starts close to the
    budget instead of burning attempts on sheer pixel count.
    """
    for tier in tiers[:-1]:
        if byte_size > tier.threshold_bytes:
            return tier.max_dimension
    return tiers[-1].max_dimension


def resize_to_cap(raster: DecodedRaster, max_dimension: int) -> DecodedRaster:
    """Scale the raster down so its longer side equals ``max_dimension``.

    Rasters already within the cap are returned unchanged. The shorter side is
    floored, so both sides shrink by the same factor.
    """
    if max_dimension < 1:
        raise ValueError("max_dimension must be at least 1")

    width, height = raster.width, raster.height
    longest = max(width, height)
    if longest <= max_dimension:
        return raster

    if width >= height:
        new_width = max_dimension
        new_height = max(1, height * max_dimension // width)
    else:
        new_height = max_dimension
        new_width = max(1, width * max_dimension // height)

    logger.debug("Resizing %dx%d to %dx%d (cap %dpx)", width, height, new_width, new_height, max_dimension)
    resized = raster.image.resize((new_width, new_height), Image.Resampling.LANCZOS)
    return DecodedRaster(image=resized, width=new_width, height=new_height)


def _flatten_to_rgb(image: Image.Image, background=(255, 255, 255)) -> Image.Image:
    if image.mode == "RGB":
        return image
    if image.mode == "RGBA":
        base = Image.new("RGB", image.size, background)
        base.paste(image, mask=image.split()[-1])
        return base
    return image.convert("RGB")


def encode_image(raster: DecodedRaster, mime_type: str, quality: float, file_name: str) -> bytes:
    """Encode the raster in ``mime_type`` at a 0.0-1.0 quality level.

    Raises:
        EncodeFailed: If the encoder is unavailable or rejects the parameters.
    """
    fmt = MIME_TO_FORMAT.get(mime_type)
    if fmt is None:
        raise EncodeFailed(file_name, f"No encoder for {mime_type!r}: {file_name}")

    image = raster.image
    params = {"format": fmt}
    if fmt == "JPEG":
        image = _flatten_to_rgb(image)
        params.update(quality=_encoder_quality(quality), optimize=True)
    elif fmt == "WEBP":
        params["quality"] = _encoder_quality(quality)

    buffer = io.BytesIO()
    try:
        image.save(buffer, **params)
    except (OSError, ValueError, KeyError) as e:
        raise EncodeFailed(file_name, f"Could not encode {file_name} as {mime_type}: {e}") from e
    return buffer.getvalue()


def _encoder_quality(quality: float) -> int:
    # Pillow takes an integer quality; 0 produces unusable JPEGs
    return max(1, min(100, int(round(quality * 100))))


def next_quality(quality: float, produced_bytes: int, budget_bytes: int, floor: float = DEFAULT_QUALITY_FLOOR) -> float:
    """Lower the quality by a step proportional to the overshoot."""
    step = DEFAULT_QUALITY_STEP
    for ratio, ratio_step in QUALITY_STEPS:
        if produced_bytes > ratio * budget_bytes:
            step = ratio_step
            break
    return max(floor, round(quality - step, 2))


def search_quality(
    raster: DecodedRaster,
    mime_type: str,
    budget_bytes: int,
    file_name: str,
    *,
    initial_quality: float = DEFAULT_INITIAL_QUALITY,
    quality_floor: float = DEFAULT_QUALITY_FLOOR,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    cancel_event: Optional[threading.Event] = None,
    on_attempt: Optional[AttemptCallback] = None,
) -> CompressedImage:
    """Re-encode with decreasing quality until the output fits the budget.

    The search stops at the first encode that fits, at the quality floor, or
    after ``max_attempts`` encodes, whichever comes first. The last two return
    the final encode with ``shortfall=True`` instead of failing.

    Args:
        raster: Pixels to encode, already resized.
        mime_type: Source type; PNG is encoded as JPEG.
        budget_bytes: Maximum wanted output size.
        file_name: Carried into the result and any error.
        initial_quality: First quality tried, 0.0-1.0.
        quality_floor: Lowest quality tried.
        max_attempts: Maximum number of encodes.
        cancel_event: Checked before every encode.
        on_attempt: Called with each attempt, e.g. for progress reporting.

    Returns:
        The compressed image.

    Raises:
        EncodeFailed: If an encode fails.
        CompressionCancelled: If ``cancel_event`` is set.
    """
    if budget_bytes <= 0:
        raise ValueError("budget_bytes must be positive")
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    output_mime = target_mime_type(mime_type)
    quality = max(quality_floor, initial_quality)

    for attempt in range(1, max_attempts + 1):
        if cancel_event is not None and cancel_event.is_set():
            raise CompressionCancelled(file_name, f"Compression of {file_name} cancelled")

        data = encode_image(raster, output_mime, quality, file_name)
        size = len(data)
        logger.debug(
            "Compression attempt %d for %s: quality=%.2f, size=%.0fKB", attempt, file_name, quality, size / KB
        )
        if on_attempt is not None:
            on_attempt(CompressionAttempt(attempt_index=attempt, tried_quality=quality, produced_byte_size=size))

        fits = size <= budget_bytes
        if fits or quality <= quality_floor or attempt == max_attempts:
            if not fits:
                logger.warning(
                    "Could not compress %s below %.0fKB after %d attempts (quality=%.2f). Final size: %.0fKB",
                    file_name,
                    budget_bytes / KB,
                    attempt,
                    quality,
                    size / KB,
                )
            return CompressedImage(
                data=data,
                mime_type=output_mime,
                file_name=file_name,
                width=raster.width,
                height=raster.height,
                quality=quality,
                attempts=attempt,
                shortfall=not fits,
            )

        quality = next_quality(quality, size, budget_bytes, quality_floor)


def compress_image(
    source_bytes: bytes,
    source_mime: str,
    source_name: str,
    budget_bytes: int = DEFAULT_BUDGET_BYTES,
    *,
    initial_quality: float = DEFAULT_INITIAL_QUALITY,
    quality_floor: float = DEFAULT_QUALITY_FLOOR,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    cancel_event: Optional[threading.Event] = None,
    on_attempt: Optional[AttemptCallback] = None,
) -> CompressedImage:
    """Decode, downscale and re-encode an image to fit ``budget_bytes``.

    A file that already fits is returned byte-for-byte with its own type,
    after checking that it decodes. PNG only becomes JPEG when it is re-encoded.

    Returns:
        The compressed image; check ``shortfall`` for a best-effort result.

    Raises:
        DecodeFailed: If the source is not a supported, readable image.
        EncodeFailed: If re-encoding fails.
        CompressionCancelled: If ``cancel_event`` is set during the search.
    """
    if budget_bytes <= 0:
        raise ValueError("budget_bytes must be positive")

    raster = decode_image(source_bytes, source_mime, source_name)

    if len(source_bytes) <= budget_bytes:
        logger.debug("%s already within budget, keeping original bytes", source_name)
        return CompressedImage(
            data=source_bytes,
            mime_type=source_mime,
            file_name=source_name,
            width=raster.width,
            height=raster.height,
            quality=max(quality_floor, initial_quality),
        )

    max_dimension = select_max_dimension(len(source_bytes))
    raster = resize_to_cap(raster, max_dimension)

    result = search_quality(
        raster,
        source_mime,
        budget_bytes,
        source_name,
        initial_quality=initial_quality,
        quality_floor=quality_floor,
        max_attempts=max_attempts,
        cancel_event=cancel_event,
        on_attempt=on_attempt,
    )
    logger.info(
        "Compressed %s from %.1fKB to %.1fKB (quality=%.2f, attempts=%d)",
        source_name,
        len(source_bytes) / KB,
        result.byte_size / KB,
        result.quality,
        result.attempts,
    )
    return result
