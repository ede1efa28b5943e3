"""Chooses the pixel encoding of a finished sprite image.

Decision, in order:

1. JPG: truecolor, no alpha (transparent areas come out black).
2. PNG with depth "direct", or depth "auto" on an image that can't be
   reduced without loss: truecolor as-is, plus a quantized legacy raster
   for renderers without alpha support when one is requested and needed.
3. Image can be reduced without loss: exact palette, no approximation.
4. Otherwise: matte partial transparency, quantize to 255 colors plus one
   transparent index.

"Without loss" means: no partially transparent pixel and at most 255
distinct visible colors.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from PIL import Image

from sprite_messages import MessageKind, MessageLevel, MessageLog
from sprite_model import RGB, CompositeArtifact, DepthPolicy, LegacyMode, PixelFormat
from sprite_parameters import BuildParameters

# One palette slot stays free for the transparent index.
MAX_INDEXED_COLORS = 255
DEFAULT_MATTE_COLOR: RGB = (255, 255, 255)
SENTINEL_COLOR: RGB = (0, 0, 0)


def _rgba(image: Image.Image) -> np.ndarray:
    if image.mode != "RGBA":
        image = image.convert("RGBA")
    return np.asarray(image)


def _packed_rgb(arr: np.ndarray) -> np.ndarray:
    rgb = arr[..., :3].astype(np.uint32)
    return (rgb[..., 0] << 16) | (rgb[..., 1] << 8) | rgb[..., 2]


def has_transparency(image: Image.Image) -> bool:
    if "A" not in image.getbands() and "transparency" not in image.info:
        return False
    return bool((_rgba(image)[..., 3] != 255).any())


def has_partial_transparency(image: Image.Image) -> bool:
    if "A" not in image.getbands() and "transparency" not in image.info:
        return False
    alpha = _rgba(image)[..., 3]
    return bool(((alpha != 0) & (alpha != 255)).any())


def distinct_colors(image: Image.Image) -> np.ndarray:
    """Sorted packed 0xRRGGBB values of all pixels that are not fully transparent."""
    arr = _rgba(image)
    return np.unique(_packed_rgb(arr)[arr[..., 3] != 0])


def count_distinct_colors(image: Image.Image) -> int:
    return int(distinct_colors(image).size)


@dataclass(frozen=True)
class ColorReductionInfo:
    has_partial_transparency: bool
    distinct_colors: int

    @classmethod
    def of(cls, image: Image.Image) -> "ColorReductionInfo":
        return cls(has_partial_transparency(image), count_distinct_colors(image))

    def can_reduce_without_quality_loss(self) -> bool:
        return not self.has_partial_transparency and self.distinct_colors <= MAX_INDEXED_COLORS


def matte(image: Image.Image, matte_color: RGB) -> Image.Image:
    """Renders partial transparency as if the image were drawn over ``matte_color``.

    Fully transparent pixels stay fully transparent, everything else
    becomes opaque.
    """
    arr = _rgba(image).astype(np.float64)
    alpha = arr[..., 3:4] / 255.0
    background = np.array(matte_color, dtype=np.float64)
    rgb = arr[..., :3] * alpha + background * (1.0 - alpha)

    out = np.empty(arr.shape, dtype=np.uint8)
    out[..., :3] = np.rint(rgb).clip(0, 255).astype(np.uint8)
    out[..., 3] = np.where(arr[..., 3] == 0, 0, 255).astype(np.uint8)
    return Image.fromarray(out)


def _indexed(indices: np.ndarray, palette: np.ndarray, transparent_index: Optional[int]) -> Image.Image:
    # an "L" image becomes "P" once it gets a palette
    result = Image.fromarray(indices.astype(np.uint8))
    result.putpalette(palette.astype(np.uint8).reshape(-1).tolist())
    if transparent_index is not None:
        result.info["transparency"] = transparent_index
    return result


def reduce(image: Image.Image) -> Image.Image:
    """Converts to indexed color without changing a single visible pixel.

    Index 0 is reserved for full transparency, and only when the image has
    fully transparent pixels.

    Raises ValueError if that is not possible, see ColorReductionInfo.
    """
    if has_partial_transparency(image):
        raise ValueError("The source image cannot contain translucent areas")

    arr = _rgba(image)
    visible = arr[..., 3] != 0
    packed = _packed_rgb(arr)
    colors = np.unique(packed[visible])
    if colors.size > MAX_INDEXED_COLORS:
        raise ValueError(f"The source image cannot contain more than {MAX_INDEXED_COLORS} colors")

    transparent = not bool(visible.all())
    offset = 1 if transparent else 0

    indices = np.searchsorted(colors, packed) + offset
    indices[~visible] = 0

    palette = np.stack([(colors >> 16) & 0xFF, (colors >> 8) & 0xFF, colors & 0xFF], axis=1)
    if transparent:
        palette = np.vstack([np.array([SENTINEL_COLOR], dtype=palette.dtype), palette])
    return _indexed(indices, palette, 0 if transparent else None)


def quantize(image: Image.Image, matte_color: RGB = DEFAULT_MATTE_COLOR,
             max_colors: int = MAX_INDEXED_COLORS) -> Image.Image:
    """Quantizes to ``max_colors`` plus a transparent index 0.

    Partial transparency is flattened onto ``matte_color``; fully transparent
    pixels map to index 0.
    """
    arr = _rgba(image)
    visible = arr[..., 3] != 0

    matted = np.asarray(matte(image, matte_color))[..., :3].copy()
    matted[~visible] = matte_color
    quantized = Image.fromarray(matted).quantize(
        colors=max_colors, method=Image.Quantize.MEDIANCUT)

    q_indices = np.asarray(quantized).astype(np.int32)
    used = int(q_indices.max()) + 1
    q_palette = np.array(quantized.getpalette()[:used * 3], dtype=np.int32).reshape(-1, 3)

    indices = q_indices + 1
    indices[~visible] = 0
    palette = np.vstack([np.array([matte_color], dtype=np.int32), q_palette])
    return _indexed(indices, palette, 0)


def opaque(image: Image.Image) -> Image.Image:
    """Flattens onto black and drops the alpha channel."""
    rgba = image if image.mode == "RGBA" else image.convert("RGBA")
    background = Image.new("RGBA", rgba.size, (0, 0, 0, 255))
    return Image.alpha_composite(background, rgba).convert("RGB")


class ColorReducer:
    """Turns a composite into its primary raster and an optional legacy raster."""

    def __init__(self, parameters: BuildParameters, log: MessageLog):
        self.parameters = parameters
        self.log = log

    def render(self, artifact: CompositeArtifact) -> Tuple[Image.Image, Optional[Image.Image]]:
        sprite = artifact.image
        declaration = artifact.declaration
        sprite_id = declaration.sprite_id
        is_png = declaration.format is PixelFormat.PNG
        depth = self.parameters.depth

        if declaration.format is PixelFormat.JPG:
            if declaration.matte_color is not None:
                self.log.warning(MessageKind.IGNORING_MATTE_COLOR_NO_SUPPORT, sprite_id)
            return opaque(sprite), None

        info = ColorReductionInfo.of(sprite)
        can_reduce = info.can_reduce_without_quality_loss()

        if is_png and (depth is DepthPolicy.DIRECT or (depth is DepthPolicy.AUTO and not can_reduce)):
            legacy = None
            # Without any transparency, legacy renderers cope with truecolor fine.
            if (self.parameters.legacy_raster
                    and declaration.legacy_mode is not LegacyMode.NONE
                    and has_transparency(sprite)):
                legacy = self._quantize(artifact, info, MessageLevel.LEGACY_NOTICE)
                artifact.has_legacy = True
            elif declaration.matte_color is not None:
                self.log.warning(MessageKind.IGNORING_MATTE_COLOR_NO_SUPPORT, sprite_id)
            return sprite, legacy

        if can_reduce:
            if declaration.matte_color is not None:
                self.log.warning(MessageKind.IGNORING_MATTE_COLOR_NO_PARTIAL_TRANSPARENCY, sprite_id)
            return reduce(sprite), None

        return self._quantize(artifact, info, MessageLevel.WARN), None

    def _quantize(self, artifact: CompositeArtifact, info: ColorReductionInfo,
                  level: MessageLevel) -> Image.Image:
        declaration = artifact.declaration
        sprite_id = declaration.sprite_id

        if info.has_partial_transparency:
            self.log.log(level, MessageKind.ALPHA_CHANNEL_LOSS_IN_INDEXED_COLOR, sprite_id)
        else:
            self.log.log(level, MessageKind.TOO_MANY_COLORS_FOR_INDEXED_COLOR, sprite_id,
                         info.distinct_colors, MAX_INDEXED_COLORS)

        matte_color = declaration.matte_color
        if matte_color is None:
            if info.has_partial_transparency:
                self.log.log(level, MessageKind.USING_WHITE_MATTE_COLOR_AS_DEFAULT, sprite_id)
            matte_color = DEFAULT_MATTE_COLOR

        return quantize(artifact.image, matte_color)
