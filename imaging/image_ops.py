"""Image manipulation primitives.

This module wraps the Pillow operations the modifiers and encoders are
built from: decoding with loader detection, thumbnailing, centring on a
canvas, trimming, compositing and encoding. Every function takes and
returns independent ``PIL.Image.Image`` handles, so decodes of the same
source bytes on different worker threads never share state.
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass
from io import BytesIO
from typing import Optional, Tuple

from PIL import Image, ImageChops, ImageCms, ImageOps  # type: ignore[import]

from .errors import ImageOperationError, ModifierError

WHITE = (255, 255, 255)
TRIM_THRESHOLD = 10

_SVG_SNIFF_BYTES = 4096
_SVG_ROOT = re.compile(rb"<svg\b[^>]*>", re.IGNORECASE | re.DOTALL)
_SVG_LENGTH = r'\b{name}\s*=\s*["\']\s*([0-9.]+)\s*(?:px)?\s*["\']'
_SVG_VIEWBOX = re.compile(
    r'\bviewBox\s*=\s*["\']\s*[-0-9.]+[\s,]+[-0-9.]+[\s,]+([0-9.]+)[\s,]+([0-9.]+)\s*["\']'
)

_DECODE_ERRORS = (OSError, ValueError, SyntaxError, Image.DecompressionBombError)


@dataclass(frozen=True)
class SourceInfo:
    """Loader and dimensions of an undecoded source buffer."""

    loader: str
    width: int
    height: int

    @property
    def portrait(self) -> bool:
        return self.width < self.height


@functools.lru_cache(maxsize=1)
def srgb_profile() -> bytes:
    """ICC bytes of the built-in sRGB profile embedded into every output."""
    return ImageCms.ImageCmsProfile(ImageCms.createProfile("sRGB")).tobytes()


def is_svg(data: bytes) -> bool:
    """Sniff an SVG document from the first bytes of ``data``."""
    head = data[:_SVG_SNIFF_BYTES].lstrip()
    if not head.startswith(b"<"):
        return False
    return _SVG_ROOT.search(head) is not None


def _svg_size(data: bytes) -> Tuple[int, int]:
    match = _SVG_ROOT.search(data[:_SVG_SNIFF_BYTES])
    if match is None:
        raise ImageOperationError("svg root element not found")
    tag = match.group(0).decode("utf-8", errors="ignore")
    width = re.search(_SVG_LENGTH.format(name="width"), tag)
    height = re.search(_SVG_LENGTH.format(name="height"), tag)
    if width and height:
        return int(float(width.group(1))), int(float(height.group(1)))
    view_box = _SVG_VIEWBOX.search(tag)
    if view_box:
        return int(float(view_box.group(1))), int(float(view_box.group(2)))
    raise ImageOperationError("svg has no usable width/height or viewBox")


def probe(data: bytes) -> SourceInfo:
    """Identify the loader and dimensions without decoding pixel data.

    Raises:
        ImageOperationError: If the buffer is not a readable image.
    """
    if is_svg(data):
        width, height = _svg_size(data)
        return SourceInfo("SVG", width, height)
    try:
        with Image.open(BytesIO(data)) as img:
            return SourceInfo(img.format or "", img.width, img.height)
    except _DECODE_ERRORS as e:
        raise ImageOperationError(f"failed to create image from buffer: {e}") from e


def detect_loader(data: bytes) -> str:
    return probe(data).loader


def _normalize_mode(img: Image.Image) -> Image.Image:
    if img.mode in ("L", "LA", "RGB", "RGBA"):
        return img
    if img.mode == "P":
        return img.convert("RGBA" if "transparency" in img.info else "RGB")
    if img.mode == "PA":
        return img.convert("RGBA")
    if img.mode in ("1", "I", "I;16", "I;16B", "I;16L", "F"):
        return img.convert("L")
    return img.convert("RGB")


def _to_srgb(img: Image.Image) -> Image.Image:
    icc = img.info.get("icc_profile")
    if not icc or img.mode not in ("RGB", "RGBA", "CMYK"):
        return img
    try:
        source = ImageCms.ImageCmsProfile(BytesIO(icc))
        target = ImageCms.ImageCmsProfile(ImageCms.createProfile("sRGB"))
        output_mode = "RGBA" if img.mode == "RGBA" else "RGB"
        return ImageCms.profileToProfile(img, source, target, outputMode=output_mode)
    except ImageCms.PyCMSError as e:
        raise ImageOperationError(f"failed to import colour profile: {e}") from e


def decode(data: bytes) -> Image.Image:
    """Fully decode ``data`` into an sRGB image in L, LA, RGB or RGBA mode.

    Raises:
        ImageOperationError: If the buffer cannot be decoded.
    """
    if is_svg(data):
        raise ImageOperationError("vector sources can only be passed through")
    try:
        img = Image.open(BytesIO(data))
        img.load()
    except _DECODE_ERRORS as e:
        raise ImageOperationError(f"failed to create image from buffer: {e}") from e
    return _normalize_mode(_to_srgb(img))


def white(mode: str):
    """Opaque white fill value for ``mode``."""
    if mode == "L":
        return 255
    if mode == "LA":
        return (255, 255)
    if mode == "RGBA":
        return (255, 255, 255, 255)
    return WHITE


def thumbnail(img: Image.Image, width: int, height: int, crop: bool) -> Image.Image:
    """Resize into a ``width`` x ``height`` box.

    With ``crop`` the box is filled and the overflow is cut around the
    centre, otherwise the image is fitted inside the box keeping its
    aspect ratio. Both up- and downscaling are allowed.
    """
    if width <= 0 or height <= 0:
        raise ModifierError(f"invalid thumbnail size {width}x{height}")
    if crop:
        return ImageOps.fit(img, (width, height), Image.Resampling.LANCZOS)
    return ImageOps.contain(img, (width, height), Image.Resampling.LANCZOS)


def gravity_centre(img: Image.Image, width: int, height: int) -> Image.Image:
    """Centre ``img`` on a white ``width`` x ``height`` canvas."""
    if width <= 0 or height <= 0:
        raise ModifierError(f"invalid canvas size {width}x{height}")
    canvas = Image.new(img.mode, (width, height), white(img.mode))
    canvas.paste(img, ((width - img.width) // 2, (height - img.height) // 2))
    return canvas


def rotate_90(img: Image.Image) -> Image.Image:
    return img.transpose(Image.Transpose.ROTATE_270)


def grayscale(img: Image.Image) -> Image.Image:
    if img.mode in ("LA", "RGBA"):
        return img.convert("LA")
    return img.convert("L")


def flatten(img: Image.Image, background=WHITE) -> Image.Image:
    """Drop the alpha channel by compositing onto ``background``."""
    if img.mode not in ("LA", "RGBA"):
        return img.convert("RGB")
    rgba = img.convert("RGBA")
    canvas = Image.new("RGBA", rgba.size, background + (255,))
    return Image.alpha_composite(canvas, rgba).convert("RGB")


def find_trim(
    img: Image.Image, background=WHITE, threshold: int = TRIM_THRESHOLD
) -> Optional[Tuple[int, int, int, int]]:
    """Bounding box of everything that differs from ``background``.

    Returns ``None`` when the whole image matches the background.
    """
    rgb = flatten(img, background)
    diff = ImageChops.difference(rgb, Image.new("RGB", rgb.size, background))
    r, g, b = diff.split()
    strongest = ImageChops.lighter(ImageChops.lighter(r, g), b)
    mask = strongest.point(lambda p: 255 if p > threshold else 0)
    return mask.getbbox()


def extract_area(img: Image.Image, box: Tuple[int, int, int, int]) -> Image.Image:
    return img.crop(box)


def composite_dest_over(
    background: Image.Image, subject: Image.Image, x: int, y: int
) -> Image.Image:
    """Draw ``background`` over ``subject`` placed at ``(x, y)``.

    The result has the size of ``background``; the subject only shows
    through where the background is transparent.
    """
    layer = Image.new("RGBA", background.size, (0, 0, 0, 0))
    layer.paste(subject.convert("RGBA"), (x, y))
    return Image.alpha_composite(layer, background.convert("RGBA"))


def _save(img: Image.Image, fmt: str, **params) -> bytes:
    buffer = BytesIO()
    try:
        img.save(buffer, format=fmt, **params)
    except (OSError, ValueError, KeyError) as e:
        raise ImageOperationError(f"failed to save image: {e}") from e
    return buffer.getvalue()


def encode_jpeg(img: Image.Image, quality: int) -> bytes:
    """Encode as JPEG on a white background with an sRGB profile."""
    return _save(flatten(img), "JPEG", quality=quality, icc_profile=srgb_profile())


def encode_png(img: Image.Image) -> bytes:
    """Encode as PNG with an sRGB profile; grayscale is widened to RGB(A)."""
    img = img.convert("RGBA" if img.mode in ("LA", "RGBA") else "RGB")
    return _save(img, "PNG", icc_profile=srgb_profile())


def encode_webp(img: Image.Image, quality: int) -> bytes:
    if img.mode in ("LA", "RGBA"):
        img = img.convert("RGBA")
    else:
        img = img.convert("RGB")
    return _save(img, "WEBP", quality=quality, icc_profile=srgb_profile())
