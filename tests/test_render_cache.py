from compositing.interaction import PlacementState
from compositing.render_cache import RenderCache, make_key
from compositing.warp import NO_WARP, WarpParams


def test_get_put_and_lru_eviction():
    c = RenderCache(max_size=2)
    c.put("a", 1)
    c.put("b", 2)
    assert c.get("a") == 1  # a is now most recent
    c.put("c", 3)

    assert c.get("b") is None
    assert c.get("a") == 1
    assert c.get("c") == 3
    assert len(c) == 2


def test_get_or_render_renders_once():
    c = RenderCache(max_size=4)
    calls = []

    def render():
        calls.append(1)
        return object()

    first = c.get_or_render("k", render)
    assert c.get_or_render("k", render) is first
    assert len(calls) == 1
    assert c.hits == 1


def test_bypass_during_gestures():
    c = RenderCache(max_size=4)
    c.put("k", "old")

    with c.bypassed():
        with c.bypassed():
            assert c.get("k") is None
            c.put("n", "new")
        assert not c.enabled

    assert c.enabled
    assert c.get("k") == "old"
    assert c.get("n") is None


def test_invalidate_all_and_by_predicate():
    c = RenderCache(max_size=8)
    c.put(("d1", 1), "x")
    c.put(("d1", 2), "y")
    c.put(("d2", 1), "z")

    assert c.invalidate(lambda k: k[0] == "d1") == 2
    assert c.get(("d2", 1)) == "z"
    assert c.invalidate() == 1
    assert len(c) == 0


def test_zero_size_disables():
    c = RenderCache(max_size=0)
    c.put("k", 1)
    assert c.get("k") is None
    assert not c.enabled


def test_key_changes_with_every_component():
    state = PlacementState()
    base = make_key("design", NO_WARP, state, "appearance", "product", (800, 800))

    assert base == make_key("design", NO_WARP, PlacementState(), "appearance", "product", (800, 800))
    assert base != make_key("other", NO_WARP, state, "appearance", "product", (800, 800))
    assert base != make_key("design", WarpParams(intensity=10), state, "appearance", "product", (800, 800))
    assert base != make_key("design", NO_WARP, PlacementState(rotation=5), "appearance", "product", (800, 800))
    assert base != make_key("design", NO_WARP, state, "appearance", "product", (640, 480))
