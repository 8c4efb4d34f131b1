"""Scale into a fixed aspect ratio with an optional white margin.

The subject is thumbnailed into the inner box (``area`` minus margin) and
then centred on a white canvas of the full ``area``, which letterboxes or
crops the source into the requested aspect ratio.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from PIL import Image  # type: ignore[import]

from imaging import image_ops

from .util import aspect

SCALE_REGEX = re.compile(r"^s(\d+)x(\d+)$")
MARGIN_REGEX = re.compile(r"^m(\d+)$")


@dataclass(frozen=True)
class Scale:
    aspect: float
    margin_percent: int = 0
    size: Optional[int] = None
    crop: bool = True


def evaluate(opt: str, opts: List[str]) -> Optional[Scale]:
    match = SCALE_REGEX.match(opt)
    if match is None:
        return None
    width, height = int(match.group(1)), int(match.group(2))
    if width == 0 or height == 0:
        return None

    margin_percent = 0
    for o in opts:
        margin = MARGIN_REGEX.match(o)
        if margin is not None:
            margin_percent = int(margin.group(1))
            break

    return Scale(aspect=aspect(width, height), margin_percent=margin_percent)


def geometry(modifier: Scale, source_width: int, source_height: int) -> Tuple[int, int, int, int]:
    """Return ``(new_width, new_height, area_width, area_height)``."""
    ratio = modifier.aspect or aspect(source_width, source_height)

    if source_width > source_height:
        base = modifier.size if modifier.size is not None else source_width
        short = base / ratio
        margin = modifier.margin_percent * 0.01 * short
        new_width = int(base - margin)
        new_height = math.floor(short - margin)
        return new_width, new_height, base, math.floor(short)

    base = modifier.size if modifier.size is not None else source_height
    short = base / ratio
    margin = modifier.margin_percent * 0.01 * short
    new_width = math.floor(short - margin)
    new_height = int(base - margin)
    return new_width, new_height, math.floor(short), base


def apply(modifier: Scale, img: Image.Image) -> Optional[Image.Image]:
    new_width, new_height, area_width, area_height = geometry(modifier, img.width, img.height)
    thumb = image_ops.thumbnail(img, new_width, new_height, crop=modifier.crop)
    return image_ops.gravity_centre(thumb, area_width, area_height)
