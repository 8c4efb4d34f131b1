"""Image modifiers.

Each modifier is a small frozen dataclass living in its own module next
to the recognizer that builds it from an option token and the function
that applies it. :func:`apply` dispatches a modifier to its
implementation and returns either a replacement image or ``None`` when
the working image is left unchanged.
"""

from __future__ import annotations

from typing import Optional, Union

from PIL import Image  # type: ignore[import]

from imaging.errors import ImageOperationError, ModifierError

from . import blackandwhite, environment, orientation, resize, scale, trim
from .blackandwhite import BlackAndWhite
from .environment import Environment, EnvironmentOptions
from .orientation import Orientation
from .resize import Resize
from .scale import Scale
from .trim import Trim

Modifier = Union[Orientation, BlackAndWhite, Trim, Scale, Resize, Environment]

_APPLY = {
    Orientation: orientation.apply,
    BlackAndWhite: blackandwhite.apply,
    Trim: trim.apply,
    Scale: scale.apply,
    Resize: resize.apply,
    Environment: environment.apply,
}


def apply(modifier: Modifier, img: Image.Image) -> Optional[Image.Image]:
    """Apply ``modifier`` to ``img``.

    Raises:
        ModifierError: If the transform fails.
    """
    try:
        return _APPLY[type(modifier)](modifier, img)
    except ModifierError:
        raise
    except ImageOperationError as e:
        raise ModifierError(str(e)) from e
    except (OSError, ValueError) as e:
        raise ModifierError(f"{type(modifier).__name__}: {e}") from e


__all__ = [
    "BlackAndWhite",
    "Environment",
    "EnvironmentOptions",
    "Modifier",
    "Orientation",
    "Resize",
    "Scale",
    "Trim",
    "apply",
]
