"""Data records passed between the compression steps and the upload flow."""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from PIL import Image


@dataclass(frozen=True)
class SourceImage:
    """A user-supplied file exactly as it was picked for upload."""

    data: bytes
    mime_type: str
    file_name: str

    @property
    def byte_size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class DecodedRaster:
    """Decoded pixels and their natural dimensions.

    Fields:
        image: Pillow image in ``RGB`` or ``RGBA`` mode.
        width: Width in pixels.
        height: Height in pixels.
    """

    image: Image.Image
    width: int
    height: int


@dataclass(frozen=True)
class Tier:
    """Files larger than ``threshold_bytes`` are capped at ``max_dimension`` px on the longer side."""

    threshold_bytes: int
    max_dimension: int


@dataclass(frozen=True)
class CompressionAttempt:
    attempt_index: int
    tried_quality: float
    produced_byte_size: int


@dataclass(frozen=True)
class CompressedImage:
    """Result of one compression call.

    ``shortfall`` is set when the search stopped at the quality floor or the
    attempt ceiling while still over budget. The image is still usable; the
    upload flow decides whether to send it.
    """

    data: bytes
    mime_type: str
    file_name: str
    width: Optional[int] = None
    height: Optional[int] = None
    quality: Optional[float] = None
    attempts: int = 0
    shortfall: bool = False

    @property
    def byte_size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class AttachmentFailure:
    file_name: str
    kind: str
    message: str


@dataclass
class PreparedSubmission:
    """Attachments ready for the multipart request, plus the files left out."""

    attachments: List[CompressedImage] = field(default_factory=list)
    failures: List[AttachmentFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def failed_names(self) -> Tuple[str, ...]:
        return tuple(failure.file_name for failure in self.failures)
