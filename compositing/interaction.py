# compositing/interaction.py
"""
Gesture handling for the editor.

PlacementState is immutable; every gesture returns a new state. Position is
stored relative to the rendered product bounds so the same state renders the
same way at preview and export resolution.
"""
from __future__ import annotations

import math
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from compositing.errors import InvalidPlacementRect, SurfaceNotReady
from compositing.fit import FitResult
from compositing.geometry import Point, Rect

MIN_SCALE = 0.5
MAX_SCALE = 2.0


def clamp(x: float, lo: float, hi: float) -> float:
    return lo if x < lo else hi if x > hi else x


@dataclass(frozen=True)
class PlacementState:
    position: Tuple[float, float] = (0.5, 0.5)  # design centre, fraction of product bounds
    scale: float = 1.0                         # multiplier on the fit scale
    rotation: float = 0.0                      # degrees clockwise

    def __post_init__(self):
        u, v = self.position
        for name, x in (("position", u), ("position", v), ("scale", self.scale), ("rotation", self.rotation)):
            if not math.isfinite(float(x)):
                raise InvalidPlacementRect(f"Placement {name} must be finite, got {x!r}")
        object.__setattr__(self, "position", (float(u), float(v)))
        object.__setattr__(self, "scale", clamp(float(self.scale), MIN_SCALE, MAX_SCALE))
        object.__setattr__(self, "rotation", float(self.rotation) % 360.0)

    @classmethod
    def initial(cls, fit: FitResult, bounds: Rect) -> "PlacementState":
        """State centred on the fitted rect at 1x scale, no rotation."""
        if bounds.is_empty:
            raise SurfaceNotReady("Cannot place a design before product bounds are known")
        cx, cy = fit.rect.center
        return cls(position=((cx - bounds.x) / bounds.width, (cy - bounds.y) / bounds.height))

    def center_in(self, bounds: Rect) -> Point:
        u, v = self.position
        return bounds.x + u * bounds.width, bounds.y + v * bounds.height

    def draw_rect(self, fit: FitResult, bounds: Rect) -> Rect:
        """Unrotated rect the design occupies on the surface."""
        w = fit.width * self.scale
        h = fit.height * self.scale
        cx, cy = self.center_in(bounds)
        return Rect(cx - w / 2.0, cy - h / 2.0, w, h)

    def as_dict(self) -> Dict[str, object]:
        return {"position": {"u": self.position[0], "v": self.position[1]}, "scale": self.scale, "rotation": self.rotation}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, object]]) -> Optional["PlacementState"]:
        if not data:
            return None
        pos = data.get("position") or {}
        if isinstance(pos, dict):
            position = (float(pos.get("u", 0.5)), float(pos.get("v", 0.5)))
        else:
            position = (float(pos[0]), float(pos[1]))
        return cls(position=position, scale=float(data.get("scale", 1.0)), rotation=float(data.get("rotation", 0.0)))


def rotated_extent(width: float, height: float, rotation: float) -> Tuple[float, float]:
    """Axis-aligned bounding-box size of a w x h rect rotated by ``rotation`` degrees."""
    a = math.radians(rotation)
    c = abs(math.cos(a))
    s = abs(math.sin(a))
    return width * c + height * s, width * s + height * c


def clamp_state(state: PlacementState, fit: FitResult, bounds: Rect) -> PlacementState:
    """
    Keep the design's rotated bounding box inside the product bounds.

    A box larger than the bounds on an axis is pinned to the bounds centre on
    that axis.
    """
    if bounds.is_empty:
        raise SurfaceNotReady("Cannot clamp a placement before product bounds are known")

    ew, eh = rotated_extent(fit.width * state.scale, fit.height * state.scale, state.rotation)
    cx, cy = state.center_in(bounds)

    def _axis(c: float, extent: float, lo: float, size: float) -> float:
        if extent >= size:
            return lo + size / 2.0
        return clamp(c, lo + extent / 2.0, lo + size - extent / 2.0)

    cx = _axis(cx, ew, bounds.x, bounds.width)
    cy = _axis(cy, eh, bounds.y, bounds.height)
    position = ((cx - bounds.x) / bounds.width, (cy - bounds.y) / bounds.height)
    if position == state.position:
        return state
    return replace(state, position=position)


class InteractionController:
    """
    Turns drag/resize/rotate gestures into clamped PlacementStates.

    Listeners get every new state. While a gesture is active (see
    ``gesture()``) ``gesture_active`` is True; the render cache is bypassed
    for that time.
    """

    def __init__(self, fit: FitResult, bounds: Rect, state: Optional[PlacementState] = None):
        self.fit = fit
        self.bounds = bounds
        self.state = clamp_state(state or PlacementState.initial(fit, bounds), fit, bounds)
        self.gesture_active = False
        self._listeners: List[Callable[[PlacementState], None]] = []

    def subscribe(self, fn: Callable[[PlacementState], None]) -> None:
        self._listeners.append(fn)

    def _emit(self, state: PlacementState) -> PlacementState:
        self.state = clamp_state(state, self.fit, self.bounds)
        for fn in self._listeners:
            fn(self.state)
        return self.state

    @contextmanager
    def gesture(self) -> Iterator["InteractionController"]:
        self.gesture_active = True
        try:
            yield self
        finally:
            self.gesture_active = False

    def drag_to(self, point: Point) -> PlacementState:
        """Move the design centre to ``point`` (surface pixels)."""
        x, y = point
        u = (float(x) - self.bounds.x) / self.bounds.width
        v = (float(y) - self.bounds.y) / self.bounds.height
        return self._emit(replace(self.state, position=(u, v)))

    def resize_to(self, scale: float) -> PlacementState:
        return self._emit(replace(self.state, scale=scale))

    def rotate_to(self, angle: float) -> PlacementState:
        return self._emit(replace(self.state, rotation=angle))

    def rebind(self, fit: FitResult, bounds: Rect) -> PlacementState:
        """New geometry (viewport resize); the relative state carries over."""
        state = clamp_state(self.state, fit, bounds)
        self.fit = fit
        self.bounds = bounds
        return self._emit(state)
