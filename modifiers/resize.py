"""Resize to a fixed width or height, keeping the aspect ratio."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional

from PIL import Image  # type: ignore[import]

from imaging import image_ops

from .util import aspect

RESIZE_REGEX = re.compile(r"^r(w|h)(\d+)$")


@dataclass(frozen=True)
class Resize:
    height: bool
    pixels: int


def evaluate(opt: str, opts: List[str]) -> Optional[Resize]:
    match = RESIZE_REGEX.match(opt)
    if match is None:
        return None
    return Resize(height=match.group(1) == "h", pixels=int(match.group(2)))


def apply(modifier: Resize, img: Image.Image) -> Optional[Image.Image]:
    # Free side of the box is never tighter than the source aspect.
    other = int(modifier.pixels * aspect(img.width, img.height))
    if modifier.height:
        return image_ops.thumbnail(img, other, modifier.pixels, crop=False)
    return image_ops.thumbnail(img, modifier.pixels, other, crop=False)
