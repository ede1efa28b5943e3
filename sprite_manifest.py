"""Loads sprite declarations and references from a JSON manifest.

The manifest stands in for directives embedded in stylesheets. Keys are the
directive property names:

    {
      "sprites": [
        {"css": "css/style.css", "line": 1,
         "sprite": "icons", "sprite-image": "../img/${sprite}.png",
         "sprite-layout": "stack-vertical", "sprite-matte-color": "#ffffff",
         "sprite-legacy-mode": "auto", "sprite-scale": 2,
         "sprite-image-uid": "md5", "sprite-margin-bottom": "2px"}
      ],
      "references": [
        {"css": "css/style.css", "line": 12, "sprite-ref": "icons",
         "image": "../img/home.png", "important": false,
         "sprite-alignment": "right", "sprite-margin-top": "4px"}
      ]
    }

"css" is relative to the build root, "sprite-image" and "image" are relative
to "css" (or to the document root when they start with "/").

Invalid values are reported to the message log and replaced by defaults, so
one bad entry never stops a build. Only a manifest that is not shaped like
the above raises RuntimeError.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from sprite_layout import StackLayout, get_layout, layout_names
from sprite_messages import MessageKind, MessageLog
from sprite_model import (
    RGB,
    Alignment,
    LayoutProperties,
    LegacyMode,
    PixelFormat,
    SpriteDeclaration,
    SpriteReference,
    UidType,
)
from sprite_paths import unsupported_variables

PROPERTY_SPRITE_ID = "sprite"
PROPERTY_SPRITE_IMAGE = "sprite-image"
PROPERTY_SPRITE_LAYOUT = "sprite-layout"
PROPERTY_SPRITE_MATTE_COLOR = "sprite-matte-color"
PROPERTY_SPRITE_LEGACY_MODE = "sprite-legacy-mode"
PROPERTY_SPRITE_SCALE = "sprite-scale"
PROPERTY_SPRITE_UID = "sprite-image-uid"
PROPERTY_SPRITE_REF = "sprite-ref"
PROPERTY_SPRITE_ALIGNMENT = "sprite-alignment"
PROPERTY_MARGIN_LEFT = "sprite-margin-left"
PROPERTY_MARGIN_RIGHT = "sprite-margin-right"
PROPERTY_MARGIN_TOP = "sprite-margin-top"
PROPERTY_MARGIN_BOTTOM = "sprite-margin-bottom"

# Where the entry came from, not a directive property.
LOCATION_KEYS = {"css", "line"}

LAYOUT_PROPERTIES = {
    PROPERTY_SPRITE_ALIGNMENT,
    PROPERTY_MARGIN_LEFT,
    PROPERTY_MARGIN_RIGHT,
    PROPERTY_MARGIN_TOP,
    PROPERTY_MARGIN_BOTTOM,
}
SPRITE_PROPERTIES = {
    PROPERTY_SPRITE_ID,
    PROPERTY_SPRITE_IMAGE,
    PROPERTY_SPRITE_LAYOUT,
    PROPERTY_SPRITE_MATTE_COLOR,
    PROPERTY_SPRITE_LEGACY_MODE,
    PROPERTY_SPRITE_SCALE,
    PROPERTY_SPRITE_UID,
} | LAYOUT_PROPERTIES | LOCATION_KEYS
REFERENCE_PROPERTIES = {PROPERTY_SPRITE_REF, "image", "important"} | LAYOUT_PROPERTIES | LOCATION_KEYS


@dataclass
class SpriteManifest:
    declarations: Dict[str, SpriteDeclaration] = field(default_factory=dict)
    references: List[SpriteReference] = field(default_factory=list)

    def references_by_sprite(self) -> Dict[str, List[SpriteReference]]:
        grouped: Dict[str, List[SpriteReference]] = {}
        for reference in self.references:
            grouped.setdefault(reference.sprite_id, []).append(reference)
        return grouped


def _has_value(entry: Dict[str, Any], key: str) -> bool:
    value = entry.get(key)
    if value is None:
        return False
    return not (isinstance(value, str) and not value.strip())


def _text(entry: Dict[str, Any], key: str) -> Optional[str]:
    if not _has_value(entry, key):
        return None
    return str(entry[key]).strip()


def _check_properties(entry: Dict[str, Any], allowed, log: MessageLog) -> None:
    unsupported = [key for key in entry if key not in allowed]
    if unsupported:
        log.warning(MessageKind.UNSUPPORTED_PROPERTIES_FOUND, ", ".join(unsupported))


def parse_color(value: Any) -> RGB:
    """Parses '#rrggbb', '#rgb' or an [r, g, b] list. Raises ValueError otherwise."""
    if isinstance(value, str):
        trimmed = value.strip()
        if trimmed.startswith("#"):
            trimmed = trimmed[1:]
        if len(trimmed) == 3:
            trimmed = "".join(c * 2 for c in trimmed)
        if len(trimmed) == 6:
            r = int(trimmed[0:2], 16)
            g = int(trimmed[2:4], 16)
            b = int(trimmed[4:6], 16)
            return (r, g, b)
        raise ValueError(f"Unsupported color value: {value}")
    if isinstance(value, (list, tuple)) and len(value) == 3:
        r, g, b = (int(c) for c in value)
        if all(0 <= c <= 255 for c in (r, g, b)):
            return (r, g, b)
    raise ValueError(f"Unsupported color value: {value}")


def parse_margin(value: Any) -> int:
    """Parses 4, '4' or '4px'. Raises ValueError otherwise."""
    if isinstance(value, bool):
        raise ValueError(f"Not a margin: {value}")
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text.lower().endswith("px"):
        text = text[:-2]
    return int(text)


def image_format(image_path: str, log: MessageLog) -> PixelFormat:
    """Infers the sprite format from the extension of its image path."""
    dot = image_path.rfind(".", image_path.rfind("/") + 1)
    if dot < 0 or dot == len(image_path) - 1:
        log.warning(MessageKind.CANNOT_DETERMINE_IMAGE_FORMAT, image_path)
        return PixelFormat.PNG

    query_at = image_path.find("?", dot)
    extension = image_path[dot + 1:query_at] if query_at >= 0 else image_path[dot + 1:]
    try:
        return PixelFormat.parse(extension)
    except ValueError:
        log.warning(MessageKind.UNSUPPORTED_SPRITE_IMAGE_FORMAT, extension, PixelFormat.values_as_string())
        return PixelFormat.PNG


def parse_layout_properties(
    entry: Dict[str, Any],
    layout: StackLayout,
    defaults: LayoutProperties,
    log: MessageLog,
) -> LayoutProperties:
    """Reads alignment and margins, falling back to ``defaults`` for missing ones."""
    alignment = defaults.alignment
    raw_alignment = _text(entry, PROPERTY_SPRITE_ALIGNMENT)
    if raw_alignment is not None:
        try:
            alignment = layout.correct_alignment(Alignment.parse(raw_alignment), log)
        except ValueError:
            log.warning(MessageKind.UNSUPPORTED_ALIGNMENT, raw_alignment, Alignment.values_as_string())
            alignment = layout.default_alignment()

    def margin(key: str, default: int) -> int:
        if not _has_value(entry, key):
            return default
        try:
            return parse_margin(entry[key])
        except ValueError:
            log.warning(MessageKind.CANNOT_PARSE_MARGIN_VALUE, str(entry[key]))
            return 0

    return LayoutProperties.create(
        alignment,
        margin(PROPERTY_MARGIN_LEFT, defaults.margin_left),
        margin(PROPERTY_MARGIN_RIGHT, defaults.margin_right),
        margin(PROPERTY_MARGIN_TOP, defaults.margin_top),
        margin(PROPERTY_MARGIN_BOTTOM, defaults.margin_bottom),
        log=log,
    )


def parse_declaration(entry: Dict[str, Any], log: MessageLog) -> Optional[SpriteDeclaration]:
    """Builds a declaration from one "sprites" entry, or None if it has no id or image."""
    _check_properties(entry, SPRITE_PROPERTIES, log)

    sprite_id = _text(entry, PROPERTY_SPRITE_ID)
    if sprite_id is None:
        log.warning(MessageKind.SPRITE_ID_NOT_FOUND)
        return None
    image_path = _text(entry, PROPERTY_SPRITE_IMAGE)
    if image_path is None:
        log.warning(MessageKind.SPRITE_IMAGE_URL_NOT_FOUND)
        return None

    for variable in unsupported_variables(image_path):
        log.warning(MessageKind.UNSUPPORTED_VARIABLE_IN_SPRITE_IMAGE_PATH, variable)

    layout = get_layout("stack-vertical")
    raw_layout = _text(entry, PROPERTY_SPRITE_LAYOUT)
    if raw_layout is not None:
        try:
            layout = get_layout(raw_layout)
        except ValueError:
            log.warning(MessageKind.UNSUPPORTED_LAYOUT, raw_layout, layout_names())

    uid_type = UidType.NONE
    raw_uid = _text(entry, PROPERTY_SPRITE_UID)
    if raw_uid is not None:
        try:
            uid_type = UidType.parse(raw_uid)
        except ValueError:
            log.warning(MessageKind.UNSUPPORTED_UID_TYPE, raw_uid, UidType.values_as_string())

    pixel_format = image_format(image_path, log)

    legacy_mode = LegacyMode.AUTO
    raw_legacy = _text(entry, PROPERTY_SPRITE_LEGACY_MODE)
    if raw_legacy is not None:
        try:
            legacy_mode = LegacyMode.parse(raw_legacy)
        except ValueError:
            log.warning(MessageKind.UNSUPPORTED_LEGACY_MODE, raw_legacy, LegacyMode.values_as_string())
        if pixel_format is not PixelFormat.PNG:
            log.notice(MessageKind.IGNORING_LEGACY_MODE, str(pixel_format))

    matte_color = None
    if _has_value(entry, PROPERTY_SPRITE_MATTE_COLOR):
        try:
            matte_color = parse_color(entry[PROPERTY_SPRITE_MATTE_COLOR])
        except (TypeError, ValueError):
            log.warning(MessageKind.MALFORMED_COLOR, str(entry[PROPERTY_SPRITE_MATTE_COLOR]))

    scale_ratio = 1.0
    if _has_value(entry, PROPERTY_SPRITE_SCALE):
        try:
            scale_ratio = float(entry[PROPERTY_SPRITE_SCALE])
        except (TypeError, ValueError):
            scale_ratio = 0.0
        if not (math.isfinite(scale_ratio) and scale_ratio > 0):
            log.warning(MessageKind.MALFORMED_SCALE, str(entry[PROPERTY_SPRITE_SCALE]))
            scale_ratio = 1.0

    properties = parse_layout_properties(entry, layout, layout.default_properties(), log)

    return SpriteDeclaration(
        sprite_id=sprite_id,
        image_path=image_path,
        layout=layout.name,
        format=pixel_format,
        legacy_mode=legacy_mode,
        matte_color=matte_color,
        scale_ratio=scale_ratio,
        layout_properties=properties,
        uid_type=uid_type,
        source=entry.get("css"),
        line=entry.get("line"),
    )


def parse_reference(
    entry: Dict[str, Any],
    declarations: Dict[str, SpriteDeclaration],
    log: MessageLog,
) -> Optional[SpriteReference]:
    _check_properties(entry, REFERENCE_PROPERTIES, log)

    sprite_id = _text(entry, PROPERTY_SPRITE_REF)
    if sprite_id is None:
        log.warning(MessageKind.SPRITE_REF_NOT_FOUND)
        return None
    declaration = declarations.get(sprite_id)
    if declaration is None:
        log.warning(MessageKind.REFERENCED_SPRITE_NOT_FOUND, sprite_id)
        return None

    image_path = _text(entry, "image")
    if image_path is None:
        log.warning(MessageKind.IMAGE_PATH_NOT_FOUND)
        return None

    layout = get_layout(declaration.layout)
    properties = parse_layout_properties(entry, layout, declaration.layout_properties, log)
    return SpriteReference(
        sprite_id=sprite_id,
        image_path=image_path,
        layout_properties=properties,
        source=entry.get("css"),
        line=entry.get("line"),
        important=bool(entry.get("important", False)),
    )


def _entries(data: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    entries = data.get(key, [])
    if not isinstance(entries, list):
        raise RuntimeError(f"Manifest '{key}' must be a list")
    for entry in entries:
        if not isinstance(entry, dict):
            raise RuntimeError(f"Every item of manifest '{key}' must be an object, got: {entry!r}")
    return entries


def parse_manifest(data: Any, log: MessageLog) -> SpriteManifest:
    if not isinstance(data, dict):
        raise RuntimeError("Manifest must contain a JSON object")

    manifest = SpriteManifest()
    for entry in _entries(data, "sprites"):
        with log.located(entry.get("css"), entry.get("line")):
            declaration = parse_declaration(entry, log)
            if declaration is None:
                continue
            if declaration.sprite_id in manifest.declarations:
                log.warning(MessageKind.IGNORING_SPRITE_IMAGE_REDEFINITION, declaration.sprite_id)
                continue
            manifest.declarations[declaration.sprite_id] = declaration

    for entry in _entries(data, "references"):
        with log.located(entry.get("css"), entry.get("line")):
            reference = parse_reference(entry, manifest.declarations, log)
            if reference is not None:
                manifest.references.append(reference)
    return manifest


def load_manifest(path: Path, log: MessageLog) -> SpriteManifest:
    path = Path(path)
    if not path.exists():
        raise RuntimeError(f"Manifest not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        data = json.load(handle)
    return parse_manifest(data, log)
