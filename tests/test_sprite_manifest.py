import json

import pytest

from sprite_manifest import load_manifest, parse_color, parse_manifest, parse_margin
from sprite_messages import MessageKind, MessageLevel
from sprite_model import Alignment, LegacyMode, PixelFormat, UidType


def sprite(**properties):
    entry = {"css": "css/style.css", "line": 1, "sprite": "icons", "sprite-image": "../img/icons.png"}
    entry.update(properties)
    return entry


def reference(**properties):
    entry = {"css": "css/style.css", "line": 10, "sprite-ref": "icons", "image": "../img/a.png"}
    entry.update(properties)
    return entry


def test_full_declaration(log, memory):
    manifest = parse_manifest({"sprites": [sprite(**{
        "sprite-image": "../img/${sprite}.gif?${md5}",
        "sprite-layout": "stack-horizontal",
        "sprite-matte-color": "#ff8000",
        "sprite-scale": "2",
        "sprite-image-uid": "md5",
        "sprite-margin-top": "3px",
    })]}, log)

    declaration = manifest.declarations["icons"]
    assert declaration.layout == "stack-horizontal"
    assert declaration.format is PixelFormat.GIF
    assert declaration.matte_color == (255, 128, 0)
    assert declaration.scale_ratio == 2.0
    assert declaration.uid_type is UidType.MD5
    assert declaration.legacy_mode is LegacyMode.AUTO
    assert declaration.layout_properties.alignment is Alignment.TOP
    assert declaration.layout_properties.margin_top == 3
    assert (declaration.source, declaration.line) == ("css/style.css", 1)
    assert memory.messages == []


def test_references_inherit_sprite_defaults(log):
    manifest = parse_manifest({
        "sprites": [sprite(**{"sprite-alignment": "right", "sprite-margin-left": 4})],
        "references": [
            reference(),
            reference(line=11, image="../img/b.png", important=True,
                      **{"sprite-alignment": "repeat", "sprite-margin-left": "0px"}),
        ],
    }, log)

    first, second = manifest.references
    assert first.layout_properties.alignment is Alignment.RIGHT
    assert first.layout_properties.margin_left == 4
    assert second.layout_properties.alignment is Alignment.REPEAT
    assert second.layout_properties.margin_left == 0
    assert second.important
    assert manifest.references_by_sprite() == {"icons": [first, second]}


def test_invalid_values_fall_back_to_defaults(log, memory):
    manifest = parse_manifest({"sprites": [sprite(**{
        "sprite-layout": "diagonal",
        "sprite-alignment": "middle",
        "sprite-margin-left": "-5px",
        "sprite-margin-right": "wide",
        "sprite-matte-color": "#12",
        "sprite-scale": "-1",
        "sprite-image-uid": "sha1",
        "sprite-legacy-mode": "always",
        "sprite-color": "red",
    })]}, log)

    declaration = manifest.declarations["icons"]
    props = declaration.layout_properties
    assert declaration.layout == "stack-vertical"
    assert props.alignment is Alignment.LEFT
    assert (props.margin_left, props.margin_right) == (0, 0)
    assert declaration.matte_color is None
    assert declaration.scale_ratio == 1.0
    assert declaration.uid_type is UidType.NONE
    assert declaration.legacy_mode is LegacyMode.AUTO

    for kind in (
        MessageKind.UNSUPPORTED_LAYOUT,
        MessageKind.UNSUPPORTED_ALIGNMENT,
        MessageKind.IGNORING_NEGATIVE_MARGIN_VALUE,
        MessageKind.CANNOT_PARSE_MARGIN_VALUE,
        MessageKind.MALFORMED_COLOR,
        MessageKind.MALFORMED_SCALE,
        MessageKind.UNSUPPORTED_UID_TYPE,
        MessageKind.UNSUPPORTED_LEGACY_MODE,
        MessageKind.UNSUPPORTED_PROPERTIES_FOUND,
    ):
        assert len(memory.of_kind(kind)) == 1, kind
    negative = memory.of_kind(MessageKind.IGNORING_NEGATIVE_MARGIN_VALUE)[0]
    assert negative.arguments == ("sprite-margin-left",)
    assert (negative.source, negative.line) == ("css/style.css", 1)


@pytest.mark.parametrize("scale", ["inf", "-inf", "nan", "0"])
def test_non_finite_scale_is_rejected(log, memory, scale):
    manifest = parse_manifest({"sprites": [sprite(**{"sprite-scale": scale})]}, log)
    assert manifest.declarations["icons"].scale_ratio == 1.0
    assert memory.of_kind(MessageKind.MALFORMED_SCALE)[0].arguments == (scale,)


def test_alignment_is_corrected_for_layout(log, memory):
    manifest = parse_manifest({
        "sprites": [sprite(**{"sprite-layout": "stack-horizontal"})],
        "references": [reference(**{"sprite-alignment": "left"})],
    }, log)
    assert manifest.references[0].layout_properties.alignment is Alignment.TOP
    warning = memory.of_kind(MessageKind.ONLY_TOP_OR_BOTTOM_ALIGNMENT_ALLOWED)[0]
    assert warning.line == 10


@pytest.mark.parametrize("image_path, expected, kind", [
    ("../img/icons.png", PixelFormat.PNG, None),
    ("../img/icons.JPG", PixelFormat.JPG, None),
    ("../img/icons.gif?${md5}", PixelFormat.GIF, None),
    ("../img/icons.bmp", PixelFormat.PNG, MessageKind.UNSUPPORTED_SPRITE_IMAGE_FORMAT),
    ("../img/icons", PixelFormat.PNG, MessageKind.CANNOT_DETERMINE_IMAGE_FORMAT),
])
def test_format_from_extension(log, memory, image_path, expected, kind):
    manifest = parse_manifest({"sprites": [sprite(**{"sprite-image": image_path})]}, log)
    assert manifest.declarations["icons"].format is expected
    if kind is None:
        assert memory.messages == []
    else:
        assert [m.kind for m in memory.messages] == [kind]


def test_legacy_mode_only_applies_to_png(log, memory):
    parse_manifest({"sprites": [sprite(**{"sprite-image": "a.gif", "sprite-legacy-mode": "none"})]}, log)
    notices = memory.of_kind(MessageKind.IGNORING_LEGACY_MODE)
    assert [m.level for m in notices] == [MessageLevel.LEGACY_NOTICE]


def test_unsupported_path_variable(log, memory):
    parse_manifest({"sprites": [sprite(**{"sprite-image": "${name}.png"})]}, log)
    assert memory.of_kind(MessageKind.UNSUPPORTED_VARIABLE_IN_SPRITE_IMAGE_PATH)[0].arguments == ("name",)


def test_missing_and_duplicate_entries(log, memory):
    manifest = parse_manifest({
        "sprites": [
            sprite(),
            sprite(**{"sprite-image": "../img/other.png"}),
            sprite(sprite=" "),
            {"sprite": "nameless"},
        ],
        "references": [
            reference(),
            reference(**{"sprite-ref": "unknown"}),
            {"image": "a.png"},
            {"sprite-ref": "icons"},
        ],
    }, log)

    assert list(manifest.declarations) == ["icons"]
    assert manifest.declarations["icons"].image_path == "../img/icons.png"
    assert len(manifest.references) == 1
    assert memory.of_kind(MessageKind.IGNORING_SPRITE_IMAGE_REDEFINITION)[0].arguments == ("icons",)
    assert len(memory.of_kind(MessageKind.SPRITE_ID_NOT_FOUND)) == 1
    assert len(memory.of_kind(MessageKind.SPRITE_IMAGE_URL_NOT_FOUND)) == 1
    assert memory.of_kind(MessageKind.REFERENCED_SPRITE_NOT_FOUND)[0].arguments == ("unknown",)
    assert len(memory.of_kind(MessageKind.SPRITE_REF_NOT_FOUND)) == 1
    assert len(memory.of_kind(MessageKind.IMAGE_PATH_NOT_FOUND)) == 1


@pytest.mark.parametrize("data", [[], {"sprites": {}}, {"references": ["icons"]}])
def test_malformed_manifest(log, data):
    with pytest.raises(RuntimeError):
        parse_manifest(data, log)


def test_load_manifest(tmp_path, log):
    path = tmp_path / "sprites.json"
    path.write_text(json.dumps({"sprites": [sprite()], "references": [reference()]}), encoding="utf-8")
    manifest = load_manifest(path, log)
    assert list(manifest.declarations) == ["icons"]

    with pytest.raises(RuntimeError):
        load_manifest(tmp_path / "missing.json", log)


def test_parse_color():
    assert parse_color("#fff") == (255, 255, 255)
    assert parse_color("102030") == (16, 32, 48)
    assert parse_color([1, 2, 3]) == (1, 2, 3)
    for bad in ("#12", "#gggggg", [1, 2], [0, 0, 300], 7):
        with pytest.raises(ValueError):
            parse_color(bad)


def test_parse_margin():
    assert parse_margin(3) == 3
    assert parse_margin(" 4PX ") == 4
    assert parse_margin("-2") == -2
    with pytest.raises(ValueError):
        parse_margin("1.5px")
