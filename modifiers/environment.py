"""Composite the subject into an environment (background) image."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from PIL import Image  # type: ignore[import]

from imaging import image_ops


@dataclass(frozen=True)
class EnvironmentOptions:
    width: int
    height: int
    x: int
    y: int
    margin_percent: int = 0


@dataclass(frozen=True)
class Environment:
    image: bytes = field(repr=False)
    opts: EnvironmentOptions


def apply(modifier: Environment, img: Image.Image) -> Optional[Image.Image]:
    env_image = image_ops.decode(modifier.image)
    scaled = image_ops.thumbnail(img, modifier.opts.width, modifier.opts.height, crop=True)
    return image_ops.composite_dest_over(env_image, scaled, modifier.opts.x, modifier.opts.y)
