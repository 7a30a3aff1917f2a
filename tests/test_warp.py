import numpy as np
import pytest

from compositing.errors import InvalidWarpParams
from compositing.warp import (
    WarpDirection,
    WarpParams,
    WarpStyle,
    displacement_field,
    generate,
    max_displacement,
)

COORDS = [(0.0, 0.0), (0.5, 0.5), (0.25, 0.8), (1.0, 1.0), (0.7, 0.5)]


@pytest.mark.parametrize("style", list(WarpStyle))
def test_zero_intensity_is_identity(style):
    params = WarpParams(style=style, intensity=0, frequency=7, amplitude=20, phase=45)
    for c in COORDS:
        assert generate(params, c) == (0.0, 0.0)
    du, dv = displacement_field(params, 16, 8)
    assert du.shape == (8, 16)
    assert not du.any() and not dv.any()


def test_params_are_clamped_and_coerced():
    p = WarpParams(style="bulge", direction="vertical", intensity=150, frequency=0, amplitude=50, phase=370)
    assert p.style is WarpStyle.BULGE
    assert p.direction is WarpDirection.VERTICAL
    assert (p.intensity, p.frequency, p.amplitude, p.phase) == (100.0, 1.0, 20.0, 10.0)

    with pytest.raises(ValueError):
        WarpParams(style="twist")


def test_horizontal_wave_displaces_along_y():
    p = WarpParams(style="wave", direction="horizontal", intensity=100, frequency=1, amplitude=10)
    du, dv = generate(p, (0.25, 0.3))
    assert du == 0.0
    # sin(pi/2) + 0.5*sin(pi) + 0.125*sin(3pi/2)
    assert dv == pytest.approx(10 * 0.875)
    assert generate(p, (0.0, 0.9)) == pytest.approx((0.0, 0.0))


def test_vertical_wave_displaces_along_x():
    p = WarpParams(style="wave", direction="vertical", intensity=100, frequency=1, amplitude=10)
    du, dv = generate(p, (0.3, 0.25))
    assert dv == 0.0
    assert du == pytest.approx(8.75)


def test_negative_intensity_flips_direction():
    a = generate(WarpParams(style="bulge", intensity=50), (0.6, 0.4))
    b = generate(WarpParams(style="bulge", intensity=-50), (0.6, 0.4))
    assert b == pytest.approx((-a[0], -a[1]))


def test_scale_multiplies_displacement():
    p = WarpParams(style="pinch", intensity=80, amplitude=12)
    one = generate(p, (0.6, 0.45))
    two = generate(p, (0.6, 0.45), scale=2.0)
    assert two == pytest.approx((2 * one[0], 2 * one[1]))


def test_bulge_pushes_outward_and_pinch_pulls_inward():
    bulge = WarpParams(style="bulge", intensity=100, amplitude=20)
    pinch = WarpParams(style="pinch", intensity=100, amplitude=20)
    assert generate(bulge, (0.7, 0.5))[0] > 0
    assert generate(pinch, (0.7, 0.5))[0] < 0


def test_bulge_is_bounded_and_decays():
    p = WarpParams(style="bulge", intensity=100, amplitude=20)
    du, dv = displacement_field(p, 201, 201)
    mag = np.hypot(du, dv)

    bound = 20 * (100 / 100) * (1.0 + 0.10)
    assert max_displacement(p) == pytest.approx(bound)
    assert mag.max() <= bound + 1e-4

    assert np.hypot(*generate(p, (1.5, 0.5))) < 1e-2
    assert np.hypot(*generate(p, (0.0, 0.0))) < 0.1


@pytest.mark.parametrize("style", list(WarpStyle))
def test_field_is_bounded_for_every_style(style):
    p = WarpParams(style=style, intensity=-100, amplitude=20, frequency=10, phase=90)
    du, dv = displacement_field(p, 64, 48)
    assert np.hypot(du, dv).max() <= max_displacement(p) + 1e-4


def test_sampled_field_matches_pointwise_generator():
    p = WarpParams(style="pinch", intensity=60, amplitude=15)
    du, dv = displacement_field(p, 50, 40, scale=1.5)
    for x, y in [(0, 0), (25, 20), (31, 7), (49, 39)]:
        gu, gv = generate(p, (x / 50, y / 40), scale=1.5)
        assert du[y, x] == pytest.approx(gu, abs=1e-4)
        assert dv[y, x] == pytest.approx(gv, abs=1e-4)


@pytest.mark.parametrize("field", ["intensity", "frequency", "amplitude", "phase"])
@pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_params_are_rejected(field, value):
    with pytest.raises(InvalidWarpParams):
        WarpParams(style="bulge", **{field: value})
