"""Option string parser for the scale endpoint.

An option string is a ``-`` separated list of tokens such as
``bw-olandscape-s400x400-m20``. Every token is offered to the
recognizers in priority order; the first one that claims it produces a
modifier and tokens nobody claims are ignored. Recognizers receive the
whole token list because some options (the ``m{N}`` margin) modify a
sibling token.
"""

from __future__ import annotations

from typing import Callable, List, Optional

from . import Modifier, blackandwhite, orientation, resize, scale, trim

Evaluator = Callable[[str, List[str]], Optional[Modifier]]

EVALUATORS: List[Evaluator] = [
    orientation.evaluate,
    blackandwhite.evaluate,
    trim.evaluate,
    scale.evaluate,
    resize.evaluate,
]


def parse_options(option_string: str) -> List[Modifier]:
    """Turn an option string into an ordered list of modifiers.

    Repeated tokens of the same kind each add their own modifier, in the
    order they appear.
    """
    options = option_string.split("-")
    modifiers: List[Modifier] = []
    for opt in options:
        for evaluate in EVALUATORS:
            modifier = evaluate(opt, options)
            if modifier is not None:
                modifiers.append(modifier)
                break
    return modifiers
