"""Rotate the image so it matches a requested orientation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from PIL import Image  # type: ignore[import]

from imaging import image_ops


@dataclass(frozen=True)
class Orientation:
    portrait: bool


def evaluate(opt: str, opts: List[str]) -> Optional[Orientation]:
    if opt in ("oportrait", "olandscape"):
        return Orientation(portrait=opt == "oportrait")
    return None


def apply(modifier: Orientation, img: Image.Image) -> Optional[Image.Image]:
    # Square images satisfy both orientations.
    if (modifier.portrait and img.width > img.height) or (
        not modifier.portrait and img.height > img.width
    ):
        return image_ops.rotate_90(img)
    return None
