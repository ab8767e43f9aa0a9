"""Prepare the images attached to a report for upload.

Each file is checked, compressed if it is over budget, and collected for the
multipart request. A file that fails is reported by name and left out; the
other files of the submission are still sent.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence, Tuple

from compression_errors import AttachmentRejected, CompressionError
from config import SHORTFALL_REJECT, Config, get_config
from image_compression_utils import SUPPORTED_MIME_TYPES, compress_image
from image_models import AttachmentFailure, CompressedImage, PreparedSubmission, SourceImage
from logger import get_logger

logger = get_logger(__name__)

UploadFile = Tuple[str, Tuple[str, bytes, str]]


def is_image_file(mime_type: str) -> bool:
    """Return True if ``mime_type`` is one of the accepted image types."""
    return mime_type in SUPPORTED_MIME_TYPES


def format_file_size(num_bytes: int) -> str:
    """Format a byte count for display, e.g. ``1.5 KB`` or ``2 MB``."""
    if num_bytes == 0:
        return "0 Bytes"

    units = ["Bytes", "KB", "MB", "GB"]
    value = float(num_bytes)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {units[index]}"


def validate_attachment(source: SourceImage, config: Config) -> None:
    """Check the upload preconditions for a single file.

    Raises:
        AttachmentRejected: With a user-facing reason.
    """
    if not is_image_file(source.mime_type):
        raise AttachmentRejected(
            source.file_name,
            f"unsupported image type {source.mime_type}; use JPG, PNG, GIF or WEBP",
        )
    if source.byte_size > config.upload_limit_bytes:
        raise AttachmentRejected(
            source.file_name,
            f"file is larger than {format_file_size(config.upload_limit_bytes)}",
        )
    if len(source.file_name) > config.max_file_name_length:
        raise AttachmentRejected(source.file_name, "file name is too long, rename it and try again")


def _forward_unchanged(source: SourceImage) -> CompressedImage:
    return CompressedImage(data=source.data, mime_type=source.mime_type, file_name=source.file_name)


def _compress_one(
    source: SourceImage, config: Config, cancel_event: Optional[threading.Event]
) -> CompressedImage:
    validate_attachment(source, config)

    if source.byte_size <= config.budget_bytes:
        return _forward_unchanged(source)

    result = compress_image(
        source.data,
        source.mime_type,
        source.file_name,
        config.budget_bytes,
        initial_quality=config.initial_quality,
        quality_floor=config.quality_floor,
        max_attempts=config.max_attempts,
        cancel_event=cancel_event,
    )
    if result.shortfall and config.shortfall_policy == SHORTFALL_REJECT:
        raise AttachmentRejected(
            source.file_name,
            f"over_budget: still {format_file_size(result.byte_size)} after compression",
        )
    return result


def prepare_attachments(
    sources: Sequence[SourceImage],
    config: Optional[Config] = None,
    cancel_event: Optional[threading.Event] = None,
) -> PreparedSubmission:
    """Validate and compress every file of a submission.

    Files run as independent tasks on a thread pool and are joined before
    returning. Attachments keep the input order.

    Args:
        sources: Files picked by the user.
        config: Limits and policies; defaults to ``get_config()``.
        cancel_event: Set it to abandon compressions still running.

    Returns:
        The attachments to upload and the files that were left out.

    Raises:
        AttachmentRejected: If more than ``config.max_images`` files are given.
    """
    config = config or get_config()
    if len(sources) > config.max_images:
        raise AttachmentRejected(
            ", ".join(source.file_name for source in sources),
            f"at most {config.max_images} images can be attached",
        )

    prepared = PreparedSubmission()
    if not sources:
        return prepared

    workers = max(1, min(config.max_workers, len(sources)))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [executor.submit(_compress_one, source, config, cancel_event) for source in sources]

        for source, future in zip(sources, futures):
            try:
                prepared.attachments.append(future.result())
            except CompressionError as e:
                logger.warning("Skipping %s (%s): %s", source.file_name, e.kind, e)
                prepared.failures.append(AttachmentFailure(file_name=source.file_name, kind=e.kind, message=str(e)))

    for attachment in prepared.attachments:
        if attachment.shortfall:
            logger.warning(
                "%s is still over budget (%s), sending it anyway",
                attachment.file_name,
                format_file_size(attachment.byte_size),
            )
    return prepared


def build_upload_files(attachments: Sequence[CompressedImage]) -> List[UploadFile]:
    """Return ``(field, (file_name, data, mime_type))`` pairs for a multipart body.

    Fields are named ``image_1``, ``image_2``... in attachment order.
    """
    return [
        (f"image_{index}", (attachment.file_name, attachment.data, attachment.mime_type))
        for index, attachment in enumerate(attachments, start=1)
    ]
