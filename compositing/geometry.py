# compositing/geometry.py
"""
Placeholder geometry.

Placement rects are authored on a fixed 400x400 reference canvas (the admin
tool's canvas). At render time they are re-projected onto the *rendered*
product bounds, i.e. the letterboxed rectangle the product photo occupies
inside the drawing surface, never onto the full surface.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from compositing.errors import InvalidPlacementRect

REFERENCE_CANVAS_WIDTH = 400
REFERENCE_CANVAS_HEIGHT = 400

logger = logging.getLogger(__name__)

Point = Tuple[float, float]


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Point:
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def as_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class PercentRect:
    x_percent: float
    y_percent: float
    width_percent: float
    height_percent: float

    def as_dict(self) -> Dict[str, float]:
        return {
            "xPercent": self.x_percent,
            "yPercent": self.y_percent,
            "widthPercent": self.width_percent,
            "heightPercent": self.height_percent,
        }


@dataclass(frozen=True)
class PlacementRect(Rect):
    """Pixel rect on the reference canvas; ``percent`` wins when present."""

    percent: Optional[PercentRect] = None

    def as_dict(self) -> Dict[str, float]:
        out = super().as_dict()
        if self.percent is not None:
            out.update(self.percent.as_dict())
        return out


DEFAULT_PLACEMENT = PlacementRect(x=150.0, y=150.0, width=100.0, height=100.0)


def default_placement(reference: int = REFERENCE_CANVAS_WIDTH) -> PlacementRect:
    """Centred quarter-size rect; equals DEFAULT_PLACEMENT on the 400 canvas."""
    if reference == REFERENCE_CANVAS_WIDTH:
        return DEFAULT_PLACEMENT
    side = reference * 0.25
    origin = (reference - side) / 2.0
    return PlacementRect(x=origin, y=origin, width=side, height=side)


# -------------------------------
# Percent <-> pixel
# -------------------------------

def to_percent(
    rect: Rect,
    canvas_width: float = REFERENCE_CANVAS_WIDTH,
    canvas_height: float = REFERENCE_CANVAS_HEIGHT,
) -> PercentRect:
    return PercentRect(
        x_percent=(rect.x / canvas_width) * 100.0,
        y_percent=(rect.y / canvas_height) * 100.0,
        width_percent=(rect.width / canvas_width) * 100.0,
        height_percent=(rect.height / canvas_height) * 100.0,
    )


def from_percent(percent: PercentRect, surface_width: float, surface_height: float) -> PlacementRect:
    return PlacementRect(
        x=(percent.x_percent / 100.0) * surface_width,
        y=(percent.y_percent / 100.0) * surface_height,
        width=(percent.width_percent / 100.0) * surface_width,
        height=(percent.height_percent / 100.0) * surface_height,
    )


def standardize_placement(
    rect: Optional[Rect],
    reference: int = REFERENCE_CANVAS_WIDTH,
) -> PlacementRect:
    """Return ``rect`` (or the default) with percent fields attached."""
    if rect is None:
        rect = default_placement(reference)
    if isinstance(rect, PlacementRect) and rect.percent is not None:
        return rect
    return PlacementRect(
        x=rect.x,
        y=rect.y,
        width=rect.width,
        height=rect.height,
        percent=to_percent(rect, reference, reference),
    )


# -------------------------------
# Resolution against rendered product bounds
# -------------------------------

def letterbox_bounds(image_size: Tuple[int, int], surface_size: Tuple[int, int]) -> Rect:
    """Bounds of an image scaled to fit (not fill) the surface and centred in it."""
    iw, ih = image_size
    sw, sh = surface_size
    if iw <= 0 or ih <= 0 or sw <= 0 or sh <= 0:
        return Rect(0.0, 0.0, 0.0, 0.0)

    scale = min(sw / float(iw), sh / float(ih))
    w = iw * scale
    h = ih * scale
    return Rect((sw - w) / 2.0, (sh - h) / 2.0, w, h)


def resolve_against_product(
    rect: PlacementRect,
    product_bounds: Rect,
    uses_percent: Optional[bool] = None,
    reference: int = REFERENCE_CANVAS_WIDTH,
) -> Rect:
    """
    Project a placement rect onto the rendered product bounds.

    Percent data is applied relative to the product bounds; legacy pixel-only
    rects are scaled by ``bounds / reference``. Both are offset by the bounds
    origin. Unloaded bounds (zero size) yield a zero-size rect at the origin
    of the bounds; callers must not render it.
    """
    if product_bounds.is_empty:
        return Rect(product_bounds.x, product_bounds.y, 0.0, 0.0)

    if uses_percent is None:
        uses_percent = rect.percent is not None

    bx, by, bw, bh = product_bounds.x, product_bounds.y, product_bounds.width, product_bounds.height

    if uses_percent:
        p = rect.percent if rect.percent is not None else to_percent(rect, reference, reference)
        return Rect(
            x=bx + (p.x_percent / 100.0) * bw,
            y=by + (p.y_percent / 100.0) * bh,
            width=(p.width_percent / 100.0) * bw,
            height=(p.height_percent / 100.0) * bh,
        )

    sx = bw / float(reference)
    sy = bh / float(reference)
    return Rect(
        x=bx + rect.x * sx,
        y=by + rect.y * sy,
        width=rect.width * sx,
        height=rect.height * sy,
    )


# -------------------------------
# Validation
# -------------------------------

_EPS = 1e-9


def validate_placement_rect(rect: PlacementRect, reference: int = REFERENCE_CANVAS_WIDTH) -> PlacementRect:
    """Raise InvalidPlacementRect unless both pixel and percent forms are in bounds."""
    values = [rect.x, rect.y, rect.width, rect.height]
    if rect.percent is not None:
        p = rect.percent
        values += [p.x_percent, p.y_percent, p.width_percent, p.height_percent]
    if not all(math.isfinite(float(v)) for v in values):
        raise InvalidPlacementRect(f"Non-finite placement values: {rect.as_dict()}")

    if rect.percent is not None:
        p = rect.percent
        if p.width_percent <= 0 or p.height_percent <= 0:
            raise InvalidPlacementRect(f"Percent rect must have positive size: {p.as_dict()}")
        if min(p.x_percent, p.y_percent) < 0:
            raise InvalidPlacementRect(f"Percent rect starts outside the canvas: {p.as_dict()}")
        if p.x_percent + p.width_percent > 100.0 + _EPS or p.y_percent + p.height_percent > 100.0 + _EPS:
            raise InvalidPlacementRect(f"Percent rect exceeds 100%: {p.as_dict()}")
        return rect

    if rect.width <= 0 or rect.height <= 0:
        raise InvalidPlacementRect(f"Placement rect must have positive size: {rect.as_dict()}")
    if rect.x < 0 or rect.y < 0:
        raise InvalidPlacementRect(f"Placement rect starts outside the reference canvas: {rect.as_dict()}")
    if rect.right > reference + _EPS or rect.bottom > reference + _EPS:
        raise InvalidPlacementRect(
            f"Placement rect exceeds the {reference}x{reference} reference canvas: {rect.as_dict()}"
        )
    return rect


def placement_or_default(
    rect: Optional[PlacementRect],
    reference: int = REFERENCE_CANVAS_WIDTH,
) -> PlacementRect:
    """Validated ``rect``, or the centred default when it is missing or invalid."""
    if rect is None:
        return standardize_placement(None, reference)
    try:
        return validate_placement_rect(rect, reference)
    except InvalidPlacementRect as e:
        logger.warning(f"Invalid placement rect, using centred default: {e}")
        return standardize_placement(None, reference)


# -------------------------------
# Record parsing
# -------------------------------

def parse_placement(data: Optional[Dict[str, Any]]) -> Optional[PlacementRect]:
    """
    Build a PlacementRect from a catalog record dict.

    Accepts ``{x, y, width, height}`` and optionally the four camelCase
    percent fields; percent data is only used when all four are present.
    """
    if not data:
        return None

    try:
        x = float(data.get("x", 0.0))
        y = float(data.get("y", 0.0))
        w = float(data.get("width", 0.0))
        h = float(data.get("height", 0.0))
    except (TypeError, ValueError) as e:
        raise InvalidPlacementRect(f"Malformed placement record: {data!r}") from e

    keys = ("xPercent", "yPercent", "widthPercent", "heightPercent")
    percent = None
    if all(data.get(k) is not None for k in keys):
        try:
            percent = PercentRect(*(float(data[k]) for k in keys))
        except (TypeError, ValueError) as e:
            raise InvalidPlacementRect(f"Malformed percent placement: {data!r}") from e

    return PlacementRect(x=x, y=y, width=w, height=h, percent=percent)


# -------------------------------
# Polygon masks
# -------------------------------

def normalize_polygon(
    points: Sequence[Point],
    relative: bool = False,
    reference: int = REFERENCE_CANVAS_WIDTH,
) -> List[Point]:
    """Clamp polygon points into the canvas (0..100 when relative)."""
    hi = 100.0 if relative else float(reference)
    return [(min(max(float(x), 0.0), hi), min(max(float(y), 0.0), hi)) for x, y in points]


def resolve_polygon(
    points: Sequence[Point],
    product_bounds: Rect,
    relative: bool = False,
    reference: int = REFERENCE_CANVAS_WIDTH,
) -> List[Point]:
    """Project a reference-canvas (or percent) polygon onto the product bounds."""
    if product_bounds.is_empty:
        return []

    div = 100.0 if relative else float(reference)
    return [
        (
            product_bounds.x + (float(x) / div) * product_bounds.width,
            product_bounds.y + (float(y) / div) * product_bounds.height,
        )
        for x, y in points
    ]


def curved_polygon(
    center_x: float,
    center_y: float,
    width: float,
    height: float,
    curve_factor: float = 0.2,
    num_points: int = 12,
) -> List[Point]:
    """Outline for curved surfaces (mugs, bottles): an ellipse bowed by ``curve_factor``."""
    pts: List[Point] = []
    rx = width / 2.0
    ry = height / 2.0
    for i in range(num_points):
        angle = (i / float(num_points)) * math.pi * 2.0
        cx = math.cos(angle) * rx * (1.0 + math.sin(angle) * curve_factor)
        cy = math.sin(angle) * ry
        pts.append((center_x + cx, center_y + cy))
    return pts
