# compositing/compositor.py
"""
Fabric compositor: warps the design, positions/rotates it, adds a soft drop
shadow and blends it onto the product surface, clipped to the product.

All blending happens on float32 RGBA arrays in 0..1. Nothing here mutates its
inputs, so every function is safe to call from several threads.
"""
from __future__ import annotations

import logging
from typing import Optional, Sequence, Tuple

import cv2
import numpy as np
from PIL import Image, ImageFilter

from compositing.appearance import AppearanceParams, BlendMode, ShadowParams
from compositing.errors import SurfaceNotReady
from compositing.geometry import Point, Rect
from compositing.warp import WarpParams, displacement_field

logger = logging.getLogger(__name__)


# -------------------------------
# Array helpers
# -------------------------------

def _to_float(img: Image.Image) -> np.ndarray:
    return np.asarray(img.convert("RGBA"), dtype=np.float32) / 255.0


def _to_image(arr: np.ndarray) -> Image.Image:
    out = np.clip(np.round(arr * 255.0), 0, 255).astype(np.uint8)
    return Image.fromarray(out, "RGBA")


# -------------------------------
# Warp (bilinear backward mapping)
# -------------------------------

def bilinear_sample(src: np.ndarray, sx: np.ndarray, sy: np.ndarray) -> np.ndarray:
    """
    Sample ``src`` (H, W, C) at fractional positions.

    Positions outside [0, W-1] x [0, H-1] come back fully transparent (zeros);
    they are never clamped or wrapped.
    """
    h, w = src.shape[:2]
    inside = (sx >= 0.0) & (sx <= w - 1) & (sy >= 0.0) & (sy <= h - 1)

    x0 = np.clip(np.floor(sx), 0, w - 1).astype(np.intp)
    y0 = np.clip(np.floor(sy), 0, h - 1).astype(np.intp)
    x1 = np.minimum(x0 + 1, w - 1)
    y1 = np.minimum(y0 + 1, h - 1)

    fx = (sx - x0)[..., None].astype(np.float32)
    fy = (sy - y0)[..., None].astype(np.float32)

    top = src[y0, x0] * (1.0 - fx) + src[y0, x1] * fx
    bottom = src[y1, x0] * (1.0 - fx) + src[y1, x1] * fx
    out = top * (1.0 - fy) + bottom * fy

    out[~inside] = 0.0
    return out


def warp_bitmap(design: Image.Image, params: WarpParams, scale: float = 1.0) -> Image.Image:
    """Apply the displacement field to the design's working canvas."""
    if params.is_identity:
        return design

    src = np.asarray(design.convert("RGBA"), dtype=np.float32)
    h, w = src.shape[:2]
    du, dv = displacement_field(params, w, h, scale)

    xs, ys = np.meshgrid(np.arange(w, dtype=np.float32), np.arange(h, dtype=np.float32))
    out = bilinear_sample(src, xs - du, ys - dv)

    return Image.fromarray(np.clip(np.round(out), 0, 255).astype(np.uint8), "RGBA")


# -------------------------------
# Placement
# -------------------------------

def render_product_surface(
    product: Image.Image,
    surface_size: Tuple[int, int],
    bounds: Rect,
) -> Image.Image:
    """Transparent surface with the product drawn (letterboxed) into ``bounds``."""
    sw, sh = surface_size
    surface = Image.new("RGBA", (int(sw), int(sh)), (0, 0, 0, 0))
    if bounds.is_empty:
        return surface

    size = (max(1, int(round(bounds.width))), max(1, int(round(bounds.height))))
    scaled = product if product.size == size else product.resize(size, Image.LANCZOS)
    surface.paste(scaled.convert("RGBA"), (int(round(bounds.x)), int(round(bounds.y))))
    return surface


def design_layer(
    design: Image.Image,
    surface_size: Tuple[int, int],
    draw_rect: Rect,
    rotation: float = 0.0,
    warp: Optional[WarpParams] = None,
    warp_scale: float = 1.0,
) -> Image.Image:
    """
    Surface-sized transparent layer holding the sized, warped and rotated design.

    Rotation is clockwise in degrees about the design's own centre.
    """
    size = (max(1, int(round(draw_rect.width))), max(1, int(round(draw_rect.height))))
    img = design.convert("RGBA")
    if img.size != size:
        img = img.resize(size, Image.LANCZOS)

    if warp is not None and not warp.is_identity:
        img = warp_bitmap(img, warp, scale=warp_scale)

    if rotation % 360.0:
        # PIL rotates counter-clockwise; expand keeps the centre fixed
        img = img.rotate(-rotation, resample=Image.BICUBIC, expand=True)

    cx, cy = draw_rect.center
    layer = Image.new("RGBA", (int(surface_size[0]), int(surface_size[1])), (0, 0, 0, 0))
    layer.paste(img, (int(round(cx - img.width / 2.0)), int(round(cy - img.height / 2.0))))
    return layer


def shadow_layer(layer: Image.Image, shadow: ShadowParams, scale: float = 1.0) -> Image.Image:
    """Blurred, tinted, offset copy of the layer's alpha."""
    r, g, b, color_alpha = shadow.color
    alpha = layer.split()[-1]

    blur = float(shadow.blur) * float(scale)
    if blur > 0:
        alpha = alpha.filter(ImageFilter.GaussianBlur(blur))

    strength = float(color_alpha) * float(shadow.opacity)
    alpha = alpha.point(lambda p: int(round(p * strength)))

    tinted = Image.new("RGBA", layer.size, (int(r), int(g), int(b), 0))
    tinted.putalpha(alpha)

    dx = int(round(shadow.offset[0] * scale))
    dy = int(round(shadow.offset[1] * scale))
    out = Image.new("RGBA", layer.size, (0, 0, 0, 0))
    out.paste(tinted, (dx, dy))
    return out


# -------------------------------
# Clipping
# -------------------------------

def detect_silhouette(product_surface: Image.Image, min_alpha: int = 50, white_min: int = 240) -> np.ndarray:
    """
    0/1 mask of product pixels: opaque enough and not near-white background.
    """
    rgba = np.asarray(product_surface.convert("RGBA"), dtype=np.uint8)
    rgb = rgba[:, :, :3]
    a = rgba[:, :, 3]

    white = (rgb[:, :, 0] > white_min) & (rgb[:, :, 1] > white_min) & (rgb[:, :, 2] > white_min)
    mask = ((a >= int(min_alpha)) & ~white).astype(np.uint8) * 255

    # Close small holes (logos, highlights) inside the garment
    k = cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (5, 5))
    mask = cv2.morphologyEx(mask, cv2.MORPH_CLOSE, k, iterations=2)
    return (mask > 0).astype(np.float32)


def clip_mask(
    surface_size: Tuple[int, int],
    bounds: Rect,
    polygon: Optional[Sequence[Point]] = None,
    product_surface: Optional[Image.Image] = None,
    silhouette: bool = False,
) -> np.ndarray:
    """
    Float (H, W) mask in 0..1 restricting writes to the product.

    Starts from the rendered product rect, narrows to ``polygon`` when given,
    then to the product's own alpha (and detected silhouette when enabled).
    """
    sw, sh = int(surface_size[0]), int(surface_size[1])
    mask = np.zeros((sh, sw), dtype=np.float32)
    if bounds.is_empty:
        return mask

    x0 = max(0, int(np.floor(bounds.x)))
    y0 = max(0, int(np.floor(bounds.y)))
    x1 = min(sw, int(np.ceil(bounds.right)))
    y1 = min(sh, int(np.ceil(bounds.bottom)))
    mask[y0:y1, x0:x1] = 1.0

    if polygon and len(polygon) >= 3:
        poly = np.zeros((sh, sw), dtype=np.uint8)
        pts = np.array([[int(round(x)), int(round(y))] for x, y in polygon], dtype=np.int32)
        cv2.fillPoly(poly, [pts], 255)
        mask *= (poly > 0).astype(np.float32)

    if product_surface is not None:
        mask *= np.asarray(product_surface.convert("RGBA"), dtype=np.float32)[:, :, 3] / 255.0
        if silhouette:
            mask *= detect_silhouette(product_surface)

    return mask


# -------------------------------
# Blending
# -------------------------------

def blend(
    base: np.ndarray,
    top: np.ndarray,
    mode: Optional[BlendMode],
    opacity: float = 1.0,
    mask: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Separable blend of ``top`` over ``base`` (both float RGBA 0..1).

    ``mode`` None means normal source-over. The top layer's effective alpha is
    alpha * opacity * mask.
    """
    cb = base[:, :, :3]
    ab = base[:, :, 3:4]
    cs = top[:, :, :3]
    a_s = top[:, :, 3:4] * float(opacity)
    if mask is not None:
        a_s = a_s * mask[:, :, None]

    if mode == BlendMode.MULTIPLY:
        mixed = cb * cs
    elif mode == BlendMode.SCREEN:
        mixed = cb + cs - cb * cs
    else:
        mixed = cs

    ao = a_s + ab * (1.0 - a_s)
    co = a_s * (1.0 - ab) * cs + a_s * ab * mixed + (1.0 - a_s) * ab * cb
    safe = np.where(ao > 0.0, ao, 1.0)

    out = np.empty_like(base)
    out[:, :, :3] = np.where(ao > 0.0, co / safe, 0.0)
    out[:, :, 3:4] = ao
    return out


# -------------------------------
# Full layer stack
# -------------------------------

def composite_design(
    product_surface: Image.Image,
    bounds: Rect,
    design: Image.Image,
    draw_rect: Rect,
    appearance: AppearanceParams,
    rotation: float = 0.0,
    warp: Optional[WarpParams] = None,
    render_scale: float = 1.0,
    polygon: Optional[Sequence[Point]] = None,
    silhouette: bool = False,
) -> Image.Image:
    """
    product -> soft shadow -> design (Multiply/Screen at appearance opacity),
    both clipped to the product.

    ``render_scale`` converts reference-canvas units (warp amplitude, shadow
    blur/offset) into surface pixels.
    """
    if bounds.is_empty:
        raise SurfaceNotReady("Product bounds are not known yet")
    if draw_rect.is_empty:
        raise SurfaceNotReady("Design draw rect is empty; geometry not resolved")

    size = product_surface.size
    layer = design_layer(design, size, draw_rect, rotation=rotation, warp=warp, warp_scale=render_scale)
    mask = clip_mask(size, bounds, polygon=polygon, product_surface=product_surface, silhouette=silhouette)

    out = _to_float(product_surface)
    if appearance.shadow.opacity > 0:
        out = blend(out, _to_float(shadow_layer(layer, appearance.shadow, render_scale)), None, 1.0, mask)
    out = blend(out, _to_float(layer), appearance.blend_mode, appearance.opacity, mask)

    logger.debug(
        f"Composited design {draw_rect.width:.1f}x{draw_rect.height:.1f} "
        f"mode={appearance.blend_mode.value} opacity={appearance.opacity:.2f}"
    )
    return _to_image(out)

