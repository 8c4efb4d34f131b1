from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from PIL import Image  # type: ignore[import]

from imaging import image_ops


@dataclass(frozen=True)
class BlackAndWhite:
    pass


def evaluate(opt: str, opts: List[str]) -> Optional[BlackAndWhite]:
    if opt == "bw":
        return BlackAndWhite()
    return None


def apply(modifier: BlackAndWhite, img: Image.Image) -> Optional[Image.Image]:
    return image_ops.grayscale(img)
