"""Errors raised while preparing image attachments.

Every error carries the offending file name so a caller handling several
files can report which one failed and carry on with the rest.
"""

from typing import Optional


class CompressionError(Exception):
    """Base class for per-file compression failures."""

    kind = "compression_error"

    def __init__(self, file_name: str, message: Optional[str] = None) -> None:
        self.file_name = file_name
        super().__init__(message or f"{self.kind}: {file_name}")


class DecodeFailed(CompressionError):
    """The bytes could not be parsed as a supported raster format."""

    kind = "decode_failed"


class EncodeFailed(CompressionError):
    """The encoder rejected the image or its parameters."""

    kind = "encode_failed"


class CompressionCancelled(CompressionError):
    """The caller abandoned the upload while the quality search was running."""

    kind = "cancelled"


class AttachmentRejected(CompressionError):
    """The file failed a precondition before compression was attempted."""

    kind = "rejected"

    def __init__(self, file_name: str, reason: str) -> None:
        self.reason = reason
        super().__init__(file_name, f"{file_name}: {reason}")
