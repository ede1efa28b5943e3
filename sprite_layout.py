"""Lays out individual images into one sprite image.

Two layouts share the same algorithm and differ only in which axis the
images stack along:

- stack-vertical    images go one below another; alignment is left/right/center/repeat
- stack-horizontal  images go one after another; alignment is top/bottom/center/repeat

The axis across the stack (the "free" axis) is sized so that every
repeat-aligned image tiles it seamlessly: it is a multiple of the least
common multiple of their sizes.

Rendered images that look the same (see image_equality) are drawn once and
share their offset.
"""

from __future__ import annotations

import math
from typing import Dict, Iterable, List, Optional

from PIL import Image

from image_equality import CanvasKey
from sprite_messages import MessageKind, MessageLog
from sprite_model import (
    Alignment,
    CompositeArtifact,
    LayoutProperties,
    PlacementRequest,
    PlacementResult,
    SpriteDeclaration,
    round_half_up,
)


class StackLayout:
    name = ""
    vertical = True
    leading = Alignment.LEFT
    trailing = Alignment.RIGHT
    illegal = frozenset()
    correction_kind = MessageKind.ONLY_LEFT_OR_RIGHT_ALIGNMENT_ALLOWED

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"

    def default_alignment(self) -> Alignment:
        return self.leading

    def default_properties(self) -> LayoutProperties:
        return LayoutProperties(self.leading)

    def correct_alignment(self, alignment: Alignment, log: Optional[MessageLog] = None) -> Alignment:
        if alignment in self.illegal:
            if log is not None:
                log.warning(self.correction_kind, str(alignment))
            return self.leading
        return alignment

    # Sizes of a request including margins. Repeated images ignore the
    # margins on the free axis.

    def required_width(self, request: PlacementRequest) -> int:
        props = request.layout_properties
        width = request.image.width
        if self.vertical and props.alignment is Alignment.REPEAT:
            return width
        return width + props.margin_left + props.margin_right

    def required_height(self, request: PlacementRequest) -> int:
        props = request.layout_properties
        height = request.image.height
        if not self.vertical and props.alignment is Alignment.REPEAT:
            return height
        return height + props.margin_top + props.margin_bottom

    def required_free_size(self, request: PlacementRequest) -> int:
        return self.required_width(request) if self.vertical else self.required_height(request)

    def required_stacking_size(self, request: PlacementRequest) -> int:
        return self.required_height(request) if self.vertical else self.required_width(request)

    def repeat_dimension(self, requests: Iterable[PlacementRequest]) -> int:
        """Least common multiple of the free-axis sizes of repeated images."""
        lcm = 1
        for request in requests:
            if request.alignment is not Alignment.REPEAT:
                continue
            size = request.image.width if self.vertical else request.image.height
            if size > 0:
                lcm = math.lcm(lcm, size)
        return lcm

    def free_dimension(self, requests: List[PlacementRequest]) -> int:
        lcm = self.repeat_dimension(requests)
        dimension = lcm
        for request in requests:
            dimension = max(dimension, self.required_free_size(request))
        if dimension % lcm != 0:
            dimension += lcm - dimension % lcm
        return dimension

    def render(self, request: PlacementRequest, dimension: int) -> Image.Image:
        raise NotImplementedError

    def keyword(self, alignment: Alignment) -> str:
        if alignment is self.trailing:
            return str(self.trailing)
        if alignment is Alignment.CENTER:
            return "center"
        if alignment is Alignment.REPEAT:
            # tiles start at 0, which has no keyword of its own
            return "0"
        return str(self.leading)

    def build_result(self, request: PlacementRequest, raw_offset: int, scale_ratio: float) -> PlacementResult:
        return PlacementResult(
            request=request,
            raw_offset=raw_offset,
            offset=round_half_up(raw_offset / scale_ratio),
            vertical_stacking=self.vertical,
            keyword=self.keyword(request.alignment),
        )

    def build_composite(
        self,
        declaration: SpriteDeclaration,
        requests: List[PlacementRequest],
        log: MessageLog,
    ) -> Optional[CompositeArtifact]:
        """Lays out and draws one sprite. Returns None when there is nothing to draw."""
        requests = [r for r in requests if r.image is not None]
        for request in requests:
            if request.image.mode != "RGBA":
                request.image = request.image.convert("RGBA")
            with log.located(request.source, request.line):
                alignment = self.correct_alignment(request.alignment, log)
                props = request.layout_properties.clamped(log)
            if alignment is not props.alignment:
                props = props.with_alignment(alignment)
            request.layout_properties = props

        dimension = self.free_dimension(requests)
        scale = declaration.scale_ratio

        cursor = 0
        offsets: Dict[CanvasKey, int] = {}
        results = {}
        for request in requests:
            rendered = self.render(request, dimension)
            key = CanvasKey(rendered)
            offset = offsets.get(key)
            if offset is None:
                offset = cursor
                offsets[key] = offset
                cursor += rendered.height if self.vertical else rendered.width

            self._check_request_scale(request, scale, log)
            results[request] = self.build_result(request, offset, scale)

        width, height = (dimension, cursor) if self.vertical else (cursor, dimension)
        if width == 0 or height == 0:
            return None

        scaled_width, scaled_height = width / scale, height / scale
        if _fractional(scaled_width) or _fractional(scaled_height):
            with log.located(declaration.source, declaration.line):
                log.warning(MessageKind.FRACTIONAL_SCALE_VALUE, declaration.sprite_id,
                            scaled_width, scaled_height)

        sprite = Image.new("RGBA", (width, height), (0, 0, 0, 0))
        for key, offset in offsets.items():
            sprite.paste(key.image, (0, offset) if self.vertical else (offset, 0))

        return CompositeArtifact(
            declaration=declaration,
            image=sprite,
            width=width,
            height=height,
            scale_ratio=scale,
            results=results,
        )

    def _check_request_scale(self, request: PlacementRequest, scale: float, log: MessageLog) -> None:
        scaled_width = self.required_width(request) / scale
        scaled_height = self.required_height(request) / scale
        if _fractional(scaled_width) or _fractional(scaled_height):
            with log.located(request.source, request.line):
                log.warning(MessageKind.IMAGE_FRACTIONAL_SCALE_VALUE, request.image_path,
                            scaled_width, scaled_height)


class VerticalStackLayout(StackLayout):
    name = "stack-vertical"
    vertical = True
    leading = Alignment.LEFT
    trailing = Alignment.RIGHT
    illegal = frozenset({Alignment.TOP, Alignment.BOTTOM})
    correction_kind = MessageKind.ONLY_LEFT_OR_RIGHT_ALIGNMENT_ALLOWED

    def render(self, request: PlacementRequest, dimension: int) -> Image.Image:
        image = request.image
        props = request.layout_properties
        rendered = Image.new("RGBA", (dimension, self.required_height(request)), (0, 0, 0, 0))

        if props.alignment is Alignment.RIGHT:
            rendered.paste(image, (dimension - props.margin_right - image.width, props.margin_top))
        elif props.alignment is Alignment.CENTER:
            rendered.paste(image, ((dimension - image.width) // 2, props.margin_top))
        elif props.alignment is Alignment.REPEAT:
            for x in range(0, dimension, max(1, image.width)):
                rendered.paste(image, (x, props.margin_top))
        else:
            rendered.paste(image, (props.margin_left, props.margin_top))
        return rendered


class HorizontalStackLayout(StackLayout):
    name = "stack-horizontal"
    vertical = False
    leading = Alignment.TOP
    trailing = Alignment.BOTTOM
    illegal = frozenset({Alignment.LEFT, Alignment.RIGHT})
    correction_kind = MessageKind.ONLY_TOP_OR_BOTTOM_ALIGNMENT_ALLOWED

    def render(self, request: PlacementRequest, dimension: int) -> Image.Image:
        image = request.image
        props = request.layout_properties
        rendered = Image.new("RGBA", (self.required_width(request), dimension), (0, 0, 0, 0))

        if props.alignment is Alignment.BOTTOM:
            rendered.paste(image, (props.margin_left, dimension - props.margin_bottom - image.height))
        elif props.alignment is Alignment.CENTER:
            rendered.paste(image, (props.margin_left, (dimension - image.height) // 2))
        elif props.alignment is Alignment.REPEAT:
            for y in range(0, dimension, max(1, image.height)):
                rendered.paste(image, (props.margin_left, y))
        else:
            rendered.paste(image, (props.margin_left, props.margin_top))
        return rendered


LAYOUTS: Dict[str, StackLayout] = {
    layout.name: layout for layout in (VerticalStackLayout(), HorizontalStackLayout())
}


def get_layout(name: str) -> StackLayout:
    try:
        return LAYOUTS[name.strip().lower()]
    except KeyError:
        raise ValueError(f"Unknown layout: {name}") from None


def layout_names() -> str:
    return ", ".join(LAYOUTS)


def _fractional(value: float) -> bool:
    return value != round(value)
