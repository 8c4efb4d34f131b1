"""Crop away a uniform border around the subject."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from PIL import Image  # type: ignore[import]

from imaging import image_ops


@dataclass(frozen=True)
class Trim:
    background: Tuple[int, int, int] = image_ops.WHITE


def evaluate(opt: str, opts: List[str]) -> Optional[Trim]:
    if opt == "tr":
        return Trim()
    return None


def apply(modifier: Trim, img: Image.Image) -> Optional[Image.Image]:
    box = image_ops.find_trim(img, modifier.background)
    if box is None:
        # Nothing but background, keep the image as it is.
        return None
    return image_ops.extract_area(img, box)
