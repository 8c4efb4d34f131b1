"""Pydantic models and data schemas for image processing requests.

The request models mirror the JSON document sent in the ``details`` field
of the batch endpoint. ``UploadImage`` is an internal record passed from
the compute pool to the uploader and never leaves the process.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field


class ImageConditions(BaseModel):
    """Boolean switches that shape one output."""

    transparent: bool = False
    trim: bool = False
    black_and_white: bool = False
    use_environment_image: bool = False
    allow_vector: bool = False


class ImageConfiguration(BaseModel):
    """Recipe for a single output image.

    Attributes:
        id: Identifier reported back in the response.
        path: Destination path without extension.
        aspect: Target aspect ratio, ``0`` derives it from the source.
        margin_percent: Border around the subject, in percent of the short side.
        size: Length of the longer output side in pixels.
        quality: Encoder quality for lossy formats.
        conditions: Flags selecting modifiers and the output format.
    """

    id: str
    path: str
    aspect: float = Field(default=0.0, ge=0)
    margin_percent: int = Field(default=0, ge=0)
    size: int = Field(gt=0)
    quality: int = Field(default=80, ge=0, le=100)
    conditions: ImageConditions = Field(default_factory=ImageConditions)


class EnvironmentImage(BaseModel):
    """Background image the subject is composited into.

    Attributes:
        path: Storage key of the environment image.
        width: Width of the box the subject is thumbnailed into.
        height: Height of the box the subject is thumbnailed into.
        x: Horizontal offset of the subject on the environment.
        y: Vertical offset of the subject on the environment.
        margin_percent: Margin requested for the subject.
    """

    path: str
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    x: int = 0
    y: int = 0
    margin_percent: int = 0


class ImageProcessingRequest(BaseModel):
    id: str
    path: str
    min_size: Optional[int] = None
    save_original: bool = False
    portrait_environment_image: Optional[EnvironmentImage] = None
    landscape_environment_image: Optional[EnvironmentImage] = None
    configurations: List[ImageConfiguration] = Field(default_factory=list)

    def environment_image_for(self, portrait: bool) -> Optional[EnvironmentImage]:
        """Return the environment descriptor matching the source orientation."""
        if portrait:
            return self.portrait_environment_image
        return self.landscape_environment_image

    def needs_environment_image(self) -> bool:
        return any(c.conditions.use_environment_image for c in self.configurations)


class ProcessedImage(BaseModel):
    """Response entry for one uploaded output.

    Attributes:
        id: Configuration id, or a generated id for alternative formats.
        alternative_to: Id of the configuration this output is a sibling of.
        path: Storage key the output was written to.
        url: Public URL reported by the storage backend.
        mime: MIME type of the stored bytes.
        hash: ETag reported by the storage backend.
        size: Number of bytes stored.
    """

    id: str
    alternative_to: Optional[str] = None
    path: str
    url: str
    mime: str
    hash: str
    size: int


class ImageType(str, Enum):
    ORIGINAL = "original"
    PROCESSED = "processed"


@dataclass(frozen=True)
class UploadImage:
    id: str
    path: str
    mime: str
    data: bytes
    alternative_to: Optional[str] = None
    image_type: ImageType = ImageType.PROCESSED


# Loader name -> (mime, extension, alternative format possible)
_LOADERS = {
    "JPEG": ("image/jpeg", "jpg", True),
    "MPO": ("image/jpeg", "jpg", True),
    "JXL": ("image/jxl", "jxl", True),
    "PNG": ("image/png", "png", True),
    "TIFF": ("image/tiff", "tiff", True),
    "WEBP": ("image/webp", "webp", True),
    "JPEG2000": ("image/jp2", "jp2", True),
    "HEIF": ("image/heif", "heif", True),
    "GIF": ("image/gif", "gif", True),
    "HDR": ("image/x-radiance", "rad", False),
    "SVG": ("image/svg+xml", "svg", False),
    "PDF": ("application/pdf", "pdf", False),
}

# Any other format Pillow decodes (BMP, ICO, PPM, TGA, ...).
_GENERIC_LOADER = ("application/octet-stream", "magick", True)
_UNKNOWN_LOADER = ("application/octet-stream", "bin", False)


def _lookup(loader: str) -> Tuple[str, str, bool]:
    if not loader:
        return _UNKNOWN_LOADER
    return _LOADERS.get(loader, _GENERIC_LOADER)


def loader_to_mime_ext(loader: str) -> Tuple[str, str]:
    mime, ext, _ = _lookup(loader)
    return mime, ext


def alternative_possible(loader: str) -> bool:
    """Whether a WebP sibling should be produced for sources of this loader."""
    return _lookup(loader)[2]
