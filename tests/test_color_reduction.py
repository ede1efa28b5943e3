import numpy as np
import pytest
from PIL import Image

from color_reduction import (
    MAX_INDEXED_COLORS,
    ColorReducer,
    ColorReductionInfo,
    count_distinct_colors,
    has_partial_transparency,
    has_transparency,
    matte,
    opaque,
    quantize,
    reduce,
)
from image_equality import visible_pixels
from sprite_messages import MessageKind, MessageLevel
from sprite_model import CompositeArtifact, DepthPolicy, LegacyMode, PixelFormat, SpriteDeclaration
from sprite_parameters import BuildParameters

FIVE_COLORS = [(255, 0, 0), (0, 255, 0), (0, 0, 255), (255, 255, 0), (10, 20, 30)]


def five_color_image(transparent=False):
    image = Image.new("RGBA", (5, 2), (0, 0, 0, 0))
    for x, color in enumerate(FIVE_COLORS):
        image.putpixel((x, 0), color + (255,))
        image.putpixel((x, 1), color + (255,))
    if transparent:
        image.putpixel((4, 1), (0, 0, 0, 0))
    return image


def many_color_image(count, transparent=0):
    arr = np.zeros((1, count + transparent, 4), dtype=np.uint8)
    for i in range(count):
        arr[0, i] = (i % 256, (i // 256) * 40, 100, 255)
    return Image.fromarray(arr)


def translucent_image():
    image = Image.new("RGBA", (3, 1), (0, 0, 0, 0))
    image.putpixel((0, 0), (255, 0, 0, 255))
    image.putpixel((1, 0), (255, 0, 0, 128))
    return image


def artifact(image, pixel_format=PixelFormat.PNG, matte_color=None, legacy_mode=LegacyMode.AUTO):
    declaration = SpriteDeclaration("sprite", "sprite." + str(pixel_format), format=pixel_format,
                                    matte_color=matte_color, legacy_mode=legacy_mode)
    return CompositeArtifact(declaration, image, image.width, image.height, 1.0)


def reducer(log, depth=DepthPolicy.AUTO, legacy=False):
    return ColorReducer(BuildParameters(depth=depth, legacy_raster=legacy), log)


def used_indices(image):
    return len(image.getcolors())


def test_reduction_info():
    assert ColorReductionInfo.of(five_color_image()) == ColorReductionInfo(False, 5)
    assert ColorReductionInfo.of(five_color_image(True)).can_reduce_without_quality_loss()
    assert not ColorReductionInfo.of(translucent_image()).can_reduce_without_quality_loss()
    assert not ColorReductionInfo.of(many_color_image(300)).can_reduce_without_quality_loss()
    assert ColorReductionInfo.of(many_color_image(255)).can_reduce_without_quality_loss()


def test_transparency_checks():
    assert not has_transparency(five_color_image())
    assert has_transparency(five_color_image(True))
    assert not has_partial_transparency(five_color_image(True))
    assert has_partial_transparency(translucent_image())
    assert not has_transparency(Image.new("RGB", (2, 2)))


def test_fully_transparent_pixels_do_not_count_as_colors():
    image = many_color_image(3, transparent=4)
    assert count_distinct_colors(image) == 3


def test_reduce_opaque_image_is_exact():
    source = five_color_image()
    reduced = reduce(source)
    assert reduced.mode == "P"
    assert used_indices(reduced) == 5
    assert "transparency" not in reduced.info
    assert np.array_equal(np.asarray(reduced.convert("RGBA")), np.asarray(source))


def test_reduce_adds_transparent_index_when_needed():
    source = five_color_image(transparent=True)
    reduced = reduce(source)
    assert used_indices(reduced) == 6
    assert reduced.info["transparency"] == 0
    assert np.asarray(reduced)[1, 4] == 0
    assert np.array_equal(visible_pixels(reduced.convert("RGBA")), visible_pixels(source))


def test_reduce_refuses_lossy_input():
    with pytest.raises(ValueError):
        reduce(translucent_image())
    with pytest.raises(ValueError):
        reduce(many_color_image(MAX_INDEXED_COLORS + 1))


def test_matte_blends_partial_transparency():
    matted = matte(translucent_image(), (255, 255, 255))
    assert matted.getpixel((0, 0)) == (255, 0, 0, 255)
    assert matted.getpixel((1, 0)) == (255, 127, 127, 255)
    assert matted.getpixel((2, 0))[3] == 0


def test_quantize_keeps_transparent_pixels_at_index_zero():
    source = many_color_image(300, transparent=5)
    quantized = quantize(source)
    indices = np.asarray(quantized)
    assert quantized.mode == "P"
    assert quantized.info["transparency"] == 0
    assert (indices[0, 300:] == 0).all()
    assert (indices[0, :300] != 0).all()
    assert used_indices(quantized) <= MAX_INDEXED_COLORS + 1


def test_opaque_flattens_onto_black():
    flattened = opaque(five_color_image(True))
    assert flattened.mode == "RGB"
    assert flattened.getpixel((4, 1)) == (0, 0, 0)
    assert flattened.getpixel((0, 0)) == (255, 0, 0)


def test_png_auto_reduces_losslessly(log, memory):
    primary, legacy = reducer(log).render(artifact(five_color_image()))
    assert primary.mode == "P"
    assert used_indices(primary) == 5
    assert legacy is None
    assert memory.messages == []


def test_too_many_colors_for_indexed_png(log, memory):
    sprite = artifact(many_color_image(300))
    primary, legacy = reducer(log, depth=DepthPolicy.INDEXED).render(sprite)

    assert primary.mode == "P"
    assert used_indices(primary) <= MAX_INDEXED_COLORS
    assert legacy is None
    warnings = memory.of_kind(MessageKind.TOO_MANY_COLORS_FOR_INDEXED_COLOR)
    assert len(warnings) == 1
    assert warnings[0].level is MessageLevel.WARN
    assert warnings[0].arguments == ("sprite", 300, 255)
    assert "300" in warnings[0].text and "255" in warnings[0].text


def test_gif_with_many_colors_is_quantized(log, memory):
    primary, _ = reducer(log).render(artifact(many_color_image(300), PixelFormat.GIF))
    assert primary.mode == "P"
    assert len(memory.of_kind(MessageKind.TOO_MANY_COLORS_FOR_INDEXED_COLOR)) == 1


def test_png_auto_keeps_truecolor_when_reduction_would_lose(log, memory):
    source = many_color_image(300)
    primary, legacy = reducer(log).render(artifact(source))
    assert primary is source
    assert legacy is None
    assert memory.messages == []


def test_png_direct_keeps_truecolor(log):
    source = five_color_image()
    primary, legacy = reducer(log, depth=DepthPolicy.DIRECT).render(artifact(source))
    assert primary.mode == "RGBA"
    assert legacy is None


def test_legacy_raster_for_truecolor_png_with_transparency(log, memory):
    sprite = artifact(many_color_image(300, transparent=2))
    primary, legacy = reducer(log, legacy=True).render(sprite)

    assert primary.mode == "RGBA"
    assert legacy.mode == "P"
    assert sprite.has_legacy
    notice = memory.of_kind(MessageKind.TOO_MANY_COLORS_FOR_INDEXED_COLOR)
    assert [m.level for m in notice] == [MessageLevel.LEGACY_NOTICE]


def test_no_legacy_raster_when_not_needed(log):
    opaque_sprite = artifact(many_color_image(300))
    assert reducer(log, legacy=True).render(opaque_sprite)[1] is None
    assert not opaque_sprite.has_legacy

    opted_out = artifact(many_color_image(300, transparent=2), legacy_mode=LegacyMode.NONE)
    assert reducer(log, legacy=True).render(opted_out)[1] is None

    # the global toggle is off
    assert reducer(log).render(artifact(many_color_image(300, transparent=2)))[1] is None


def test_partial_transparency_in_indexed_mode(log, memory):
    primary, _ = reducer(log, depth=DepthPolicy.INDEXED).render(artifact(translucent_image()))

    expanded = primary.convert("RGBA")
    assert expanded.getpixel((1, 0))[3] == 255
    assert expanded.getpixel((2, 0))[3] == 0
    assert len(memory.of_kind(MessageKind.ALPHA_CHANNEL_LOSS_IN_INDEXED_COLOR)) == 1
    assert len(memory.of_kind(MessageKind.USING_WHITE_MATTE_COLOR_AS_DEFAULT)) == 1


def test_configured_matte_color_is_used(log, memory):
    sprite = artifact(translucent_image(), PixelFormat.GIF, matte_color=(0, 0, 0))
    primary, _ = reducer(log).render(sprite)
    r, g, b, a = primary.convert("RGBA").getpixel((1, 0))
    # half red over black, not over white
    assert a == 255
    assert abs(r - 128) <= 2 and g <= 2 and b <= 2
    assert memory.of_kind(MessageKind.USING_WHITE_MATTE_COLOR_AS_DEFAULT) == []


def test_matte_color_ignored_without_partial_transparency(log, memory):
    reducer(log).render(artifact(five_color_image(), matte_color=(1, 2, 3)))
    assert len(memory.of_kind(MessageKind.IGNORING_MATTE_COLOR_NO_PARTIAL_TRANSPARENCY)) == 1


def test_jpg_is_opaque_truecolor(log, memory):
    primary, legacy = reducer(log).render(artifact(five_color_image(True), PixelFormat.JPG, matte_color=(1, 2, 3)))
    assert primary.mode == "RGB"
    assert primary.getpixel((4, 1)) == (0, 0, 0)
    assert legacy is None
    assert len(memory.of_kind(MessageKind.IGNORING_MATTE_COLOR_NO_SUPPORT)) == 1
