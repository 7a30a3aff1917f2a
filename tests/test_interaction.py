import pytest

from compositing.errors import InvalidPlacementRect, SurfaceNotReady
from compositing.fit import FitResult
from compositing.geometry import Rect
from compositing.interaction import InteractionController, PlacementState, clamp_state, rotated_extent

BOUNDS = Rect(0, 0, 400, 400)
FIT = FitResult(100, 125, 100, 50, 0.5)


def test_state_normalises_scale_and_rotation():
    assert PlacementState(scale=3).scale == 2.0
    assert PlacementState(scale=0.1).scale == 0.5
    assert PlacementState(rotation=370).rotation == pytest.approx(10.0)
    assert PlacementState(rotation=-90).rotation == pytest.approx(270.0)


def test_initial_state_centres_on_fit():
    s = PlacementState.initial(FIT, BOUNDS)
    assert s.position == (0.375, 0.375)
    assert s.draw_rect(FIT, BOUNDS) == Rect(100, 125, 100, 50)


def test_initial_state_needs_bounds():
    with pytest.raises(SurfaceNotReady):
        PlacementState.initial(FIT, Rect(0, 0, 0, 0))


def test_draw_rect_scales_about_centre():
    s = PlacementState(position=(0.375, 0.375), scale=2.0)
    r = s.draw_rect(FIT, BOUNDS)
    assert (r.width, r.height) == (200, 100)
    assert r.center == (150, 150)


def test_drag_inside_bounds():
    c = InteractionController(FIT, BOUNDS)
    s = c.drag_to((200, 100))
    assert s.position == (0.5, 0.25)


def test_drag_is_clamped_to_product_bounds():
    c = InteractionController(FIT, BOUNDS)
    s = c.drag_to((1000, 1000))
    assert s.position == (0.875, 0.9375)
    s = c.drag_to((-50, -50))
    assert s.position == (0.125, 0.0625)


def test_clamp_accounts_for_rotation():
    c = InteractionController(FIT, BOUNDS)
    c.rotate_to(90)
    s = c.drag_to((1000, 1000))
    cx, cy = s.center_in(BOUNDS)
    assert cx == pytest.approx(375)
    assert cy == pytest.approx(350)


def test_resize_is_clamped():
    c = InteractionController(FIT, BOUNDS)
    assert c.resize_to(5).scale == 2.0
    assert c.resize_to(0.01).scale == 0.5
    assert c.resize_to(1.3).scale == pytest.approx(1.3)


def test_oversized_design_is_pinned_to_centre():
    big = FitResult(50, 50, 300, 300, 1.0)
    c = InteractionController(big, BOUNDS)
    s = c.resize_to(2.0)
    assert s.position == (0.5, 0.5)


def test_rotation_wraps():
    c = InteractionController(FIT, BOUNDS)
    assert c.rotate_to(450).rotation == pytest.approx(90)


def test_rotated_extent():
    w, h = rotated_extent(100, 50, 90)
    assert (w, h) == (pytest.approx(50), pytest.approx(100))
    w, h = rotated_extent(100, 100, 45)
    assert w == pytest.approx(141.421, abs=1e-3)


def test_gesture_flag_and_listeners():
    seen = []
    c = InteractionController(FIT, BOUNDS)
    c.subscribe(seen.append)

    with pytest.raises(RuntimeError):
        with c.gesture():
            assert c.gesture_active
            c.drag_to((200, 200))
            raise RuntimeError("pointer lost")

    assert not c.gesture_active
    assert seen == [c.state]


def test_rebind_keeps_relative_position():
    c = InteractionController(FIT, BOUNDS)
    c.drag_to((200, 100))
    s = c.rebind(FitResult(300, 250, 200, 100, 1.0), Rect(100, 0, 800, 800))
    assert s.position == (0.5, 0.25)
    assert s.center_in(c.bounds) == (500, 200)


def test_clamp_state_requires_bounds():
    with pytest.raises(SurfaceNotReady):
        clamp_state(PlacementState(), FIT, Rect(0, 0, 0, 0))


def test_state_dict_round_trip():
    s = PlacementState(position=(0.3, 0.6), scale=1.5, rotation=45)
    assert PlacementState.from_dict(s.as_dict()) == s
    assert PlacementState.from_dict({"position": [0.2, 0.4]}).position == (0.2, 0.4)
    assert PlacementState.from_dict(None) is None


@pytest.mark.parametrize(
    "kwargs",
    [
        {"scale": float("nan")},
        {"rotation": float("nan")},
        {"rotation": float("inf")},
        {"position": (float("nan"), 0.5)},
        {"position": (0.5, float("-inf"))},
    ],
)
def test_non_finite_state_is_rejected(kwargs):
    with pytest.raises(InvalidPlacementRect):
        PlacementState(**kwargs)


def test_resize_to_nan_keeps_previous_state():
    c = InteractionController(FIT, BOUNDS)
    before = c.state
    with pytest.raises(InvalidPlacementRect):
        c.resize_to(float("nan"))
    assert c.state == before


def test_rebind_to_empty_bounds_leaves_controller_usable():
    c = InteractionController(FIT, BOUNDS)
    with pytest.raises(SurfaceNotReady):
        c.rebind(FIT, Rect(0, 0, 0, 0))
    assert c.bounds == BOUNDS
    assert c.fit == FIT
    assert c.drag_to((200, 100)).position == (0.5, 0.25)
