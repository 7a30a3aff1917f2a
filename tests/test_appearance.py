import pytest
from PIL import Image

from compositing.appearance import (
    BlendMode,
    adjust_brightness,
    blend_mode,
    brightness,
    derive_appearance,
    dominant_color,
    hex_to_rgb,
    is_light_color,
    opacity,
    rgb_to_hex,
    shadow,
    tint_product,
)
from compositing.errors import InvalidColorFormat


def test_brightness_extremes_and_mid_grey():
    assert brightness("#000000") == 0
    assert brightness("#FFFFFF") == pytest.approx(1.0)
    assert brightness("#808080") == pytest.approx(0.502, abs=1e-3)


def test_brightness_accepts_missing_hash_and_lowercase():
    assert brightness("ffffff") == pytest.approx(1.0)
    assert hex_to_rgb("#0a141e") == (10, 20, 30)


@pytest.mark.parametrize("bad", ["#FFF", "#GGGGGG", "12345", "#1234567", "", "##123456", None, 0xFFFFFF])
def test_malformed_colours_rejected(bad):
    with pytest.raises(InvalidColorFormat):
        brightness(bad)


def test_blend_mode_boundaries():
    assert blend_mode("#1a1a1a", []) == BlendMode.SCREEN
    assert blend_mode("#f5f5f5", []) == BlendMode.MULTIPLY


def test_blend_mode_mid_range_splits_at_half():
    assert blend_mode("#666666") == BlendMode.SCREEN    # 0.40
    assert blend_mode("#999999") == BlendMode.MULTIPLY  # 0.60


def test_dark_tag_forces_screen_regardless_of_brightness():
    assert blend_mode("#FFFFFF", ["dark"]) == BlendMode.SCREEN
    assert blend_mode("#FFFFFF", ["Black"]) == BlendMode.SCREEN


def test_colored_tag_uses_point_four_threshold():
    # 0x70 -> brightness ~0.44: Screen by default, Multiply for coloured products
    assert blend_mode("#707070") == BlendMode.SCREEN
    assert blend_mode("#707070", ["colored"]) == BlendMode.MULTIPLY
    assert blend_mode("#555555", ["colored"]) == BlendMode.SCREEN


def test_opacity_rules():
    assert opacity("#000000") == pytest.approx(0.90)
    assert opacity("#000000", ["dark"]) == pytest.approx(0.95)
    assert opacity("#FFFFFF") == pytest.approx(0.75)
    assert opacity("#FFFFFF", ["black"]) == pytest.approx(0.80)

    b = brightness("#808080")
    assert opacity("#808080") == pytest.approx(0.85 - ((b - 0.3) / 0.4) * 0.10)


def test_opacity_interpolates_downwards_through_mid_range():
    values = [opacity(rgb_to_hex(g, g, g)) for g in range(0x50, 0xB1, 0x08)]
    assert values == sorted(values, reverse=True)
    assert all(0.75 <= v <= 0.85 for v in values)


def test_shadow_on_black_is_light():
    s = shadow("#000000")
    assert s.color[:3] == (255, 255, 255)
    assert s.color[3] == pytest.approx(0.21)
    assert s.blur == 3
    assert s.opacity == pytest.approx(0.35)
    assert s.offset == (1.0, 1.0)


def test_shadow_on_white_is_dark():
    s = shadow("#FFFFFF")
    assert s.color[:3] == (0, 0, 0)
    assert s.color[3] == pytest.approx(0.23)
    assert s.blur == 3
    assert s.opacity == pytest.approx(0.35)


def test_shadow_mid_grey():
    s = shadow("#808080")
    assert s.color[:3] == (0, 0, 0)
    assert s.blur == 4
    assert s.opacity == pytest.approx(0.25)


def test_shadow_dark_tag_uses_light_colour():
    s = shadow("#FFFFFF", ["dark"])
    assert s.color[:3] == (255, 255, 255)
    assert s.color[3] == pytest.approx(0.15)


def test_derive_appearance_bundles_rules():
    a = derive_appearance("#f5f5f5", ["T-Shirts"])
    assert a.blend_mode == BlendMode.MULTIPLY
    assert a.opacity == pytest.approx(0.75)
    assert a.as_dict()["blendMode"] == "multiply"


def test_colour_helpers():
    assert rgb_to_hex(10, 20, 30) == "#0a141e"
    assert adjust_brightness("#808080", 2.0) == "#ffffff"
    assert adjust_brightness("#808080", 0.5) == "#404040"
    assert is_light_color("#FFFFFF")
    assert not is_light_color("#222222")


def test_dominant_color_of_opaque_pixels():
    assert dominant_color(Image.new("RGBA", (50, 50), (10, 20, 30, 255))) == "#0A141E"


def test_dominant_color_falls_back_when_transparent():
    assert dominant_color(Image.new("RGBA", (20, 20), (255, 0, 0, 0))) == "#888888"


def test_tint_white_is_noop():
    img = Image.new("RGBA", (4, 4), (200, 200, 200, 255))
    assert tint_product(img, "#FFFFFF") is img


def test_tint_recolours_fabric_only():
    img = Image.new("RGBA", (3, 1), (200, 200, 200, 255))
    img.putpixel((1, 0), (250, 250, 250, 255))  # background white
    img.putpixel((2, 0), (200, 200, 200, 0))    # transparent

    out = tint_product(img, "#FF0000")

    r, g, b, a = out.getpixel((0, 0))
    assert r > 200 and g == 0 and b == 0 and a == 255
    assert out.getpixel((1, 0)) == (250, 250, 250, 255)
    assert out.getpixel((2, 0)) == (200, 200, 200, 0)
