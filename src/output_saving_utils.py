"""Helpers for saving compressed images and logging results."""

import os

from image_models import CompressedImage

EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


def output_file_name(image: CompressedImage) -> str:
    """Return the file name with an extension matching the output type.

    ``photo.png`` compressed to JPEG is saved as ``photo.jpg``.
    """
    base_name, extension = os.path.splitext(image.file_name)
    return base_name + EXTENSIONS.get(image.mime_type, extension)


def save_compressed_image(image: CompressedImage, output_dir: str) -> str:
    """Write the compressed payload to ``output_dir``.

    Args:
        image: Result of the compression step.
        output_dir: Destination directory, created if missing.

    Returns:
        The full path to the saved file.

    Raises:
        RuntimeError: If the file cannot be written.
    """
    os.makedirs(output_dir, exist_ok=True)
    final_path = os.path.join(output_dir, output_file_name(image))

    try:
        with open(final_path, "wb") as f:
            f.write(image.data)
    except OSError as e:  # pragma: no cover - filesystem issues
        raise RuntimeError(f"❌ Failed to write image: {e}") from e

    return final_path


def log_processed_file(log_file: str, original_name: str, original_size: int, image: CompressedImage) -> None:
    """Append a log entry describing a processed image.

    Args:
        log_file: Path to the log file.
        original_name: File name as picked by the user.
        original_size: Size of the original file in bytes.
        image: The attachment that will be uploaded.

    Returns:
        None
    """
    log_dir = os.path.dirname(log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    quality = f"{image.quality:.2f}" if image.quality is not None else "unchanged"
    with open(log_file, "a", encoding="utf-8") as log:
        log.write(f"Processed File: {original_name}\n")
        log.write(f"Sizes:          {original_size} -> {image.byte_size} bytes ({image.mime_type})\n")
        log.write(f"Quality:        {quality} after {image.attempts} attempts\n")
        if image.shortfall:
            log.write("Status:         over budget (best effort)\n")
        log.write("-" * 40 + "\n")
