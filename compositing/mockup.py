# compositing/mockup.py
"""
Public entry points: ``composite`` (interactive preview) and
``export_full_resolution`` (download/save). Both run the same pipeline:

  decode -> letterbox product -> resolve placement against product bounds
  -> fit design -> derive appearance -> warp/rotate/shadow/blend -> clip
"""
from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

import cv2
import numpy as np
from PIL import Image

from compositing.appearance import AppearanceParams, derive_appearance, dominant_color, tint_product
from compositing.compositor import composite_design, design_layer, render_product_surface
from compositing.errors import SurfaceNotReady
from compositing.fit import FitResult, fit
from compositing.geometry import (
    PlacementRect,
    Point,
    Rect,
    normalize_polygon,
    placement_or_default,
    resolve_against_product,
    resolve_polygon,
    standardize_placement,
    validate_placement_rect,
)
from compositing.imaging import BitmapSource, png_bytes, to_data_url
from compositing.interaction import PlacementState, clamp_state
from compositing.models import Bitmap, Design, Product, RenderSurface
from compositing.render_cache import RenderCache, make_key
from compositing.warp import NO_WARP, WarpParams
from config import settings

logger = logging.getLogger(__name__)

_cache = RenderCache(settings.render_cache_size)


def get_cache() -> RenderCache:
    return _cache


# -------------------------------
# Result types
# -------------------------------

@dataclass(frozen=True)
class Scene:
    """Everything resolved for one product + design + surface combination."""

    product: Product
    product_bitmap: Bitmap
    design_bitmap: Bitmap
    surface_size: Tuple[int, int]
    bounds: Rect
    placement: PlacementRect
    target: Rect
    fit: FitResult
    color: str
    appearance: AppearanceParams
    polygon: List[Point] = field(default_factory=list)
    render_scale: float = 1.0


@dataclass
class RenderedBitmap:
    image: Image.Image
    product_bounds: Rect
    draw_rect: Rect
    appearance: AppearanceParams
    state: PlacementState

    @property
    def size(self) -> Tuple[int, int]:
        return self.image.size

    def to_data_url(self) -> str:
        return to_data_url(self.image)

    def png_bytes(self) -> bytes:
        return png_bytes(self.image)

    def save(self, path: str) -> str:
        out_dir = os.path.dirname(path)
        if out_dir:
            os.makedirs(out_dir, exist_ok=True)
        self.image.save(path, "PNG")
        return path

    def as_dict(self) -> Dict[str, Any]:
        return {
            "width": self.image.width,
            "height": self.image.height,
            "productBounds": self.product_bounds.as_dict(),
            "drawRect": self.draw_rect.as_dict(),
            "appearance": self.appearance.as_dict(),
            "placementState": self.state.as_dict(),
        }


# -------------------------------
# Scene resolution
# -------------------------------

def _as_bitmap(source: Union[Bitmap, Design, Product, BitmapSource]) -> Bitmap:
    if isinstance(source, Bitmap):
        return source
    if isinstance(source, (Design, Product)):
        source = source.image
    return Bitmap.load(source)


def _placement_for(product: Product, reference: int) -> PlacementRect:
    if settings.fallback_on_invalid_placement:
        return placement_or_default(product.placement, reference)
    if product.placement is None:
        return standardize_placement(None, reference)
    return validate_placement_rect(product.placement, reference)


def build_scene(
    product: Product,
    product_bitmap: Bitmap,
    design_bitmap: Bitmap,
    surface_size: Optional[Tuple[int, int]] = None,
    color: Optional[str] = None,
    maintain_aspect_ratio: bool = True,
) -> Scene:
    """
    Resolve geometry and appearance. ``surface_size`` None means the
    product's native resolution (export).
    """
    reference = settings.reference_canvas
    surface = RenderSurface.for_product(product_bitmap.size, surface_size or product_bitmap.size)
    bounds = surface.product_bounds
    if bounds.is_empty:
        raise SurfaceNotReady(f"Surface {surface.width}x{surface.height} has no room for the product")

    placement = _placement_for(product, reference)
    target = resolve_against_product(placement, bounds, reference=reference)
    fitted = fit(design_bitmap.size, target, maintain_aspect_ratio)

    if not color:
        color = product.color_options[0] if product.color_options else dominant_color(product_bitmap.image)
    appearance = derive_appearance(color, product.category_tags)

    polygon: List[Point] = []
    if product.polygon_mask:
        pts = normalize_polygon(product.polygon_mask, product.polygon_relative, reference)
        polygon = resolve_polygon(pts, bounds, product.polygon_relative, reference)

    return Scene(
        product=product,
        product_bitmap=product_bitmap,
        design_bitmap=design_bitmap,
        surface_size=surface.size,
        bounds=bounds,
        placement=placement,
        target=target,
        fit=fitted,
        color=color,
        appearance=appearance,
        polygon=polygon,
        render_scale=bounds.width / float(reference),
    )


def render_scene(
    scene: Scene,
    state: Optional[PlacementState] = None,
    warp: WarpParams = NO_WARP,
    recolor_product: bool = False,
    silhouette: Optional[bool] = None,
    cache: Optional[RenderCache] = None,
) -> RenderedBitmap:
    if silhouette is None:
        silhouette = settings.detect_silhouette
    if state is None:
        state = PlacementState.initial(scene.fit, scene.bounds)
    state = clamp_state(state, scene.fit, scene.bounds)

    key = make_key(
        scene.design_bitmap.id,
        warp,
        state,
        scene.appearance,
        product_id=scene.product_bitmap.id,
        surface=scene.surface_size,
        extra=(scene.placement, scene.fit, tuple(scene.polygon), scene.color, bool(recolor_product), bool(silhouette)),
    )

    def _render() -> RenderedBitmap:
        product_img = scene.product_bitmap.image
        if recolor_product:
            product_img = tint_product(product_img, scene.color)
        surface = render_product_surface(product_img, scene.surface_size, scene.bounds)

        draw_rect = state.draw_rect(scene.fit, scene.bounds)
        image = composite_design(
            surface,
            scene.bounds,
            scene.design_bitmap.image,
            draw_rect,
            scene.appearance,
            rotation=state.rotation,
            warp=warp,
            render_scale=scene.render_scale,
            polygon=scene.polygon,
            silhouette=silhouette,
        )
        return RenderedBitmap(
            image=image,
            product_bounds=scene.bounds,
            draw_rect=draw_rect,
            appearance=scene.appearance,
            state=state,
        )

    if cache is None:
        return _render()
    return cache.get_or_render(key, _render)


# -------------------------------
# Public API
# -------------------------------

def composite(
    product: Product,
    design: Union[Bitmap, Design, BitmapSource],
    placement_state: Optional[PlacementState] = None,
    warp_params: WarpParams = NO_WARP,
    surface_size: Optional[Tuple[int, int]] = None,
    color: Optional[str] = None,
    recolor_product: bool = False,
    use_cache: bool = True,
) -> RenderedBitmap:
    """
    Render a preview of ``design`` printed on ``product``.

    Raises ImageDecodeFailed before any composition if either bitmap cannot
    be decoded; no partial output is ever returned.
    """
    product_bitmap = _as_bitmap(product)
    design_bitmap = _as_bitmap(design)
    maintain = design.maintain_aspect_ratio if isinstance(design, Design) else True

    if surface_size is None:
        surface_size = (settings.preview_width, settings.preview_height)

    scene = build_scene(product, product_bitmap, design_bitmap, surface_size, color, maintain)
    return render_scene(
        scene,
        placement_state,
        warp_params,
        recolor_product=recolor_product,
        cache=_cache if use_cache else None,
    )


def _export_scene(
    product: Product,
    design: Union[Bitmap, Design, BitmapSource],
    placement_state: Optional[PlacementState],
    warp_params: WarpParams,
    color: Optional[str],
    recolor_product: bool,
) -> Tuple[Scene, RenderedBitmap]:
    product_bitmap = _as_bitmap(product)
    design_bitmap = _as_bitmap(design)
    maintain = design.maintain_aspect_ratio if isinstance(design, Design) else True

    scene = build_scene(product, product_bitmap, design_bitmap, None, color, maintain)
    return scene, render_scene(scene, placement_state, warp_params, recolor_product=recolor_product)


def export_full_resolution(
    product: Product,
    design: Union[Bitmap, Design, BitmapSource],
    placement_state: Optional[PlacementState] = None,
    warp_params: WarpParams = NO_WARP,
    color: Optional[str] = None,
    recolor_product: bool = False,
) -> RenderedBitmap:
    """Same pipeline at the product photo's native resolution (never cached)."""
    _, rendered = _export_scene(product, design, placement_state, warp_params, color, recolor_product)
    logger.info(f"Exported full-resolution mockup {rendered.size[0]}x{rendered.size[1]} for product {product.id!r}")
    return rendered


def export_to_dir(
    product: Product,
    design: Union[Bitmap, Design, BitmapSource],
    out_dir: str,
    placement_state: Optional[PlacementState] = None,
    warp_params: WarpParams = NO_WARP,
    color: Optional[str] = None,
    recolor_product: bool = False,
    write_debug: Optional[bool] = None,
) -> Dict[str, Any]:
    """Full-resolution export written to ``out_dir/mockup.png`` (plus debug overlays)."""
    if write_debug is None:
        write_debug = settings.write_debug

    scene, rendered = _export_scene(product, design, placement_state, warp_params, color, recolor_product)

    out_path = rendered.save(os.path.join(out_dir, "mockup.png"))
    debug_paths: List[str] = []
    if write_debug:
        debug_paths = write_debug_overlays(scene, rendered, out_path, warp=warp_params)

    logger.info(f"Wrote mockup {out_path} ({rendered.size[0]}x{rendered.size[1]})")
    return {"path": out_path, "debug": debug_paths, **rendered.as_dict()}


# -------------------------------
# Debug overlays
# -------------------------------

def _rotated_corners(rect: Rect, rotation: float) -> List[Tuple[int, int]]:
    cx, cy = rect.center
    a = math.radians(rotation)
    c, s = math.cos(a), math.sin(a)
    out = []
    for dx, dy in ((-1, -1), (1, -1), (1, 1), (-1, 1)):
        x = dx * rect.width / 2.0
        y = dy * rect.height / 2.0
        out.append((int(round(cx + x * c - y * s)), int(round(cy + x * s + y * c))))
    return out


def _debug_paths(output_path: str) -> Tuple[str, str, str]:
    root, ext = os.path.splitext(output_path)
    ext = ext if ext else ".png"
    return root + "_area_debug" + ext, root + "_placement_outline" + ext, root + "_warp_debug" + ext


def write_debug_overlays(
    scene: Scene,
    rendered: RenderedBitmap,
    output_path: str,
    warp: WarpParams = NO_WARP,
) -> List[str]:
    """
    Write three overlays next to ``output_path``: the resolved placement area,
    the (rotated) design outline and the design coverage mask.
    """
    surface = render_product_surface(scene.product_bitmap.image, scene.surface_size, scene.bounds)
    base = cv2.cvtColor(np.array(surface.convert("RGB")), cv2.COLOR_RGB2BGR)
    area_path, outline_path, warp_path = _debug_paths(output_path)

    t = scene.target
    area = np.array(
        [[t.x, t.y], [t.right, t.y], [t.right, t.bottom], [t.x, t.bottom]], dtype=np.float64
    ).round().astype(np.int32)
    overlay = base.copy()
    cv2.fillPoly(overlay, [area], (0, 255, 0))
    if scene.polygon:
        poly = np.array(scene.polygon, dtype=np.float64).round().astype(np.int32)
        cv2.polylines(overlay, [poly], isClosed=True, color=(255, 0, 0), thickness=2)
    cv2.imwrite(area_path, cv2.addWeighted(base, 0.82, overlay, 0.18, 0))

    corners = _rotated_corners(rendered.draw_rect, rendered.state.rotation)
    outline = base.copy()
    cv2.polylines(outline, [np.array(corners, dtype=np.int32)], isClosed=True, color=(0, 0, 255), thickness=3)
    for (x, y) in corners:
        cv2.circle(outline, (int(x), int(y)), 6, (0, 0, 255), -1)
    cv2.imwrite(outline_path, outline)

    layer = design_layer(
        scene.design_bitmap.image,
        scene.surface_size,
        rendered.draw_rect,
        rotation=rendered.state.rotation,
        warp=warp,
        warp_scale=scene.render_scale,
    )
    mask = (np.array(layer)[:, :, 3] > 0).astype(np.uint8) * 255
    mask = cv2.GaussianBlur(mask, (0, 0), 1.2)
    colored = np.zeros_like(base)
    colored[:, :, 1] = mask
    cv2.imwrite(warp_path, cv2.addWeighted(base, 0.9, colored, 0.35, 0))

    return [area_path, outline_path, warp_path]
