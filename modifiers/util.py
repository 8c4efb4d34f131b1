from __future__ import annotations


def aspect(width: float, height: float) -> float:
    """Ratio of the longer to the shorter side, always >= 1."""
    return max(width, height) / min(width, height)
