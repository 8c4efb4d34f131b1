"""Shared fixtures: in-memory test images and a compute pool."""

import io

import pytest
from PIL import Image  # type: ignore

from workers.compute_pool import ComputePool

SVG_DOCUMENT = (
    b'<?xml version="1.0" encoding="UTF-8"?>\n'
    b'<svg xmlns="http://www.w3.org/2000/svg" width="120" height="80" viewBox="0 0 120 80">'
    b'<rect x="10" y="10" width="100" height="60" fill="#c00"/></svg>'
)


def encode(img, fmt, **params):
    buf = io.BytesIO()
    img.save(buf, format=fmt, **params)
    return buf.getvalue()


@pytest.fixture
def make_image():
    """Return a factory producing encoded single-colour images."""

    def _make(size=(400, 800), fmt="PNG", color=(200, 30, 30), mode="RGB"):
        return encode(Image.new(mode, size, color), fmt)

    return _make


@pytest.fixture
def svg_bytes():
    return SVG_DOCUMENT


@pytest.fixture
def pool():
    compute = ComputePool(2)
    yield compute
    compute.shutdown()
