"""Content-aware equality for rendered sprite canvases.

Two canvases are equal when they have the same size and mode and every
visible pixel matches. Fully transparent pixels compare equal whatever their
stored color, since that color never shows.

sampled_hash() looks at a 4x4 to 7x7 grid of pixels only, so that
comparing many distinct canvases stays cheap; images_equal() does the full
comparison.
"""

from __future__ import annotations

import numpy as np
from PIL import Image


def visible_pixels(image: Image.Image) -> np.ndarray:
    """Pixel array with every channel of fully transparent pixels zeroed."""
    arr = np.array(image)
    if "A" in image.getbands():
        alpha = arr[..., image.getbands().index("A")]
        arr[alpha == 0] = 0
    return arr


def _packed(arr: np.ndarray) -> np.ndarray:
    """Packs channels of each pixel into one uint32 (ARGB order for RGBA)."""
    if arr.ndim == 2:
        return arr.astype(np.uint32)
    arr = arr.astype(np.uint32)
    if arr.shape[2] == 4:
        r, g, b, a = arr[..., 0], arr[..., 1], arr[..., 2], arr[..., 3]
        return (a << 24) | (r << 16) | (g << 8) | b
    packed = np.zeros(arr.shape[:2], dtype=np.uint32)
    for channel in range(arr.shape[2]):
        packed = (packed << 8) | arr[..., channel]
    return packed


def _sample_step(size: int) -> int:
    return size >> 2 if size > 7 else 1


def sampled_hash(image: Image.Image) -> int:
    width, height = image.size
    h = width ^ (height << 16)
    if width == 0 or height == 0:
        return h

    samples = visible_pixels(image)[::_sample_step(height), ::_sample_step(width)]
    return h ^ int(np.bitwise_xor.reduce(_packed(samples), axis=None))


def images_equal(a: Image.Image, b: Image.Image) -> bool:
    if a is b:
        return True
    if a.size != b.size or a.mode != b.mode:
        return False
    return bool(np.array_equal(visible_pixels(a), visible_pixels(b)))


class CanvasKey:
    """Dict key wrapping a canvas with content-aware __eq__ and __hash__."""

    __slots__ = ("image", "_hash")

    def __init__(self, image: Image.Image):
        self.image = image
        self._hash = sampled_hash(image)

    def __hash__(self) -> int:
        return self._hash

    def __eq__(self, other) -> bool:
        if not isinstance(other, CanvasKey):
            return NotImplemented
        return self._hash == other._hash and images_equal(self.image, other.image)
