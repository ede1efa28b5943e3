"""Plain data passed between the sprite manifest, layout and color reduction."""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from PIL import Image

from sprite_messages import MessageKind, MessageLog

RGB = Tuple[int, int, int]


class _NamedEnum(enum.Enum):
    """Enum whose members are written lower-case in manifests and stylesheets."""

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str):
        return cls(value.strip().lower())

    @classmethod
    def values_as_string(cls) -> str:
        return ", ".join(m.value for m in cls)


class Alignment(_NamedEnum):
    LEFT = "left"
    RIGHT = "right"
    TOP = "top"
    BOTTOM = "bottom"
    CENTER = "center"
    REPEAT = "repeat"


class PixelFormat(_NamedEnum):
    PNG = "png"
    GIF = "gif"
    JPG = "jpg"


class LegacyMode(_NamedEnum):
    # never produce a legacy raster for this sprite
    NONE = "none"
    # produce one if the global toggle is on and the sprite needs it
    AUTO = "auto"


class DepthPolicy(_NamedEnum):
    AUTO = "auto"
    INDEXED = "indexed"
    DIRECT = "direct"


class UidType(_NamedEnum):
    NONE = "none"
    DATE = "date"
    MD5 = "md5"


@dataclass(frozen=True)
class LayoutProperties:
    alignment: Alignment
    margin_left: int = 0
    margin_right: int = 0
    margin_top: int = 0
    margin_bottom: int = 0

    @classmethod
    def create(
        cls,
        alignment: Alignment,
        margin_left: int = 0,
        margin_right: int = 0,
        margin_top: int = 0,
        margin_bottom: int = 0,
        log: Optional[MessageLog] = None,
    ) -> "LayoutProperties":
        """Builds properties, clamping negative margins to 0 with a warning."""
        margins = {
            "sprite-margin-left": margin_left,
            "sprite-margin-right": margin_right,
            "sprite-margin-top": margin_top,
            "sprite-margin-bottom": margin_bottom,
        }
        for name, value in margins.items():
            if value < 0:
                if log is not None:
                    log.warning(MessageKind.IGNORING_NEGATIVE_MARGIN_VALUE, name)
                margins[name] = 0
        return cls(
            alignment,
            margins["sprite-margin-left"],
            margins["sprite-margin-right"],
            margins["sprite-margin-top"],
            margins["sprite-margin-bottom"],
        )

    def clamped(self, log: Optional[MessageLog] = None) -> "LayoutProperties":
        """Returns these properties with negative margins set to 0, warning for each."""
        if min(self.margin_left, self.margin_right, self.margin_top, self.margin_bottom) >= 0:
            return self
        return LayoutProperties.create(self.alignment, self.margin_left, self.margin_right,
                                       self.margin_top, self.margin_bottom, log)

    def with_alignment(self, alignment: Alignment) -> "LayoutProperties":
        return LayoutProperties(alignment, self.margin_left, self.margin_right,
                                self.margin_top, self.margin_bottom)


@dataclass(frozen=True)
class SpriteDeclaration:
    sprite_id: str
    image_path: str
    layout: str = "stack-vertical"
    format: PixelFormat = PixelFormat.PNG
    legacy_mode: LegacyMode = LegacyMode.AUTO
    matte_color: Optional[RGB] = None
    scale_ratio: float = 1.0
    layout_properties: LayoutProperties = LayoutProperties(Alignment.LEFT)
    uid_type: UidType = UidType.NONE
    source: Optional[str] = None
    line: Optional[int] = None


@dataclass(frozen=True)
class SpriteReference:
    """A reference to an individual image, before the image is decoded."""

    sprite_id: str
    image_path: str
    layout_properties: LayoutProperties
    source: Optional[str] = None
    line: Optional[int] = None
    important: bool = False


@dataclass(eq=False)
class PlacementRequest:
    """A decoded image waiting to be placed; identity-hashed."""

    sprite_id: str
    image: Image.Image
    layout_properties: LayoutProperties
    image_path: str = ""
    source: Optional[str] = None
    line: Optional[int] = None
    important: bool = False

    @classmethod
    def from_reference(cls, reference: SpriteReference, image: Image.Image) -> "PlacementRequest":
        return cls(
            reference.sprite_id,
            image,
            reference.layout_properties,
            reference.image_path,
            reference.source,
            reference.line,
            reference.important,
        )

    @property
    def alignment(self) -> Alignment:
        return self.layout_properties.alignment


@dataclass(frozen=True)
class PlacementResult:
    request: PlacementRequest
    # offset in composite pixels, before scaling
    raw_offset: int
    # raw_offset / scale ratio, rounded
    offset: int
    vertical_stacking: bool
    keyword: str

    @property
    def offset_value(self) -> str:
        return f"-{self.offset}px"

    @property
    def horizontal_position(self) -> str:
        return self.keyword if self.vertical_stacking else self.offset_value

    @property
    def vertical_position(self) -> str:
        return self.offset_value if self.vertical_stacking else self.keyword

    @property
    def background_position(self) -> str:
        position = f"{self.horizontal_position} {self.vertical_position}"
        if self.request.important:
            position += " !important"
        return position


@dataclass
class CompositeArtifact:
    declaration: SpriteDeclaration
    image: Image.Image
    width: int
    height: int
    scale_ratio: float
    results: Dict[PlacementRequest, PlacementResult] = field(default_factory=dict)
    has_legacy: bool = False
    resolved_path: Optional[str] = None
    resolved_legacy_path: Optional[str] = None

    @property
    def sprite_id(self) -> str:
        return self.declaration.sprite_id

    @property
    def scaled_size(self) -> Tuple[int, int]:
        """Size for background-size when the sprite is scaled."""
        return (round_half_up(self.width / self.scale_ratio),
                round_half_up(self.height / self.scale_ratio))


def round_half_up(value: float) -> int:
    # round() is banker's rounding; offsets must round .5 up
    return math.floor(value + 0.5)
