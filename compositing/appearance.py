# compositing/appearance.py
"""
Colour-adaptive appearance: how the design layer should be blended onto a
product of a given colour.

The thresholds below are empirically tuned "looks right" constants carried
over from the storefront editor; they are heuristics, not a physical model.
The discontinuities at brightness 0.3 / 0.5 / 0.7 are deliberate and relied
upon by callers.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Optional, Sequence, Tuple

import numpy as np
from PIL import Image

from compositing.errors import InvalidColorFormat

_HEX_RE = re.compile(r"^[0-9a-fA-F]{6}$")

DARK_TAGS = ("dark", "black")
COLORED_TAG = "colored"

FALLBACK_COLOR = "#888888"


class BlendMode(str, Enum):
    MULTIPLY = "multiply"
    SCREEN = "screen"


@dataclass(frozen=True)
class ShadowParams:
    color: Tuple[int, int, int, float]  # rgba, alpha in 0..1
    blur: float
    offset: Tuple[float, float]
    opacity: float

    @property
    def css_color(self) -> str:
        r, g, b, a = self.color
        return f"rgba({r}, {g}, {b}, {a:.3f})"

    def as_dict(self) -> Dict[str, object]:
        return {
            "color": self.css_color,
            "blur": self.blur,
            "offset": {"x": self.offset[0], "y": self.offset[1]},
            "opacity": self.opacity,
        }


@dataclass(frozen=True)
class AppearanceParams:
    blend_mode: BlendMode
    opacity: float
    shadow: ShadowParams

    def as_dict(self) -> Dict[str, object]:
        return {"blendMode": self.blend_mode.value, "opacity": self.opacity, "shadow": self.shadow.as_dict()}


# -------------------------------
# Colour helpers
# -------------------------------

def hex_to_rgb(hex_color: str) -> Tuple[int, int, int]:
    if not isinstance(hex_color, str):
        raise InvalidColorFormat(f"Colour must be a string, got {type(hex_color).__name__}")
    h = hex_color.strip()
    if h.startswith("#"):
        h = h[1:]
    if not _HEX_RE.match(h):
        raise InvalidColorFormat(f"Expected 6 hex digits, got {hex_color!r}")
    return int(h[0:2], 16), int(h[2:4], 16), int(h[4:6], 16)


def rgb_to_hex(r: int, g: int, b: int) -> str:
    return "#" + "".join(f"{int(c):02x}" for c in (r, g, b))


def brightness(hex_color: str) -> float:
    """Perceived brightness (0.299R + 0.587G + 0.114B) on 0..1 channels."""
    r, g, b = hex_to_rgb(hex_color)
    return 0.299 * (r / 255.0) + 0.587 * (g / 255.0) + 0.114 * (b / 255.0)


def is_light_color(hex_color: str) -> bool:
    return brightness(hex_color) > 0.5


def adjust_brightness(hex_color: str, factor: float) -> str:
    r, g, b = hex_to_rgb(hex_color)
    return rgb_to_hex(*(min(255, max(0, int(round(c * factor)))) for c in (r, g, b)))


def _normalize_tags(tags: Optional[Iterable[str]]) -> Tuple[str, ...]:
    return tuple(str(t).strip().lower() for t in (tags or ()) if str(t).strip())


def _has_dark_tag(tags: Sequence[str]) -> bool:
    return any(t in DARK_TAGS for t in tags)


# -------------------------------
# Appearance rules
# -------------------------------

def blend_mode(hex_color: str, category_tags: Optional[Iterable[str]] = None) -> BlendMode:
    b = brightness(hex_color)
    tags = _normalize_tags(category_tags)

    if _has_dark_tag(tags):
        return BlendMode.SCREEN
    if COLORED_TAG in tags:
        return BlendMode.SCREEN if b < 0.4 else BlendMode.MULTIPLY

    if b < 0.3:
        return BlendMode.SCREEN
    if b > 0.7:
        return BlendMode.MULTIPLY
    return BlendMode.SCREEN if b < 0.5 else BlendMode.MULTIPLY


def opacity(hex_color: str, category_tags: Optional[Iterable[str]] = None) -> float:
    b = brightness(hex_color)
    adjust = 0.05 if _has_dark_tag(_normalize_tags(category_tags)) else 0.0

    if b < 0.3:
        base = 0.90
    elif b > 0.7:
        base = 0.75
    else:
        # 0.85 at brightness 0.3 down to 0.75 at 0.7
        base = 0.85 - ((b - 0.3) / 0.4) * 0.10
    return min(1.0, base + adjust)


def shadow(hex_color: str, category_tags: Optional[Iterable[str]] = None) -> ShadowParams:
    b = brightness(hex_color)
    light = b < 0.5 or _has_dark_tag(_normalize_tags(category_tags))

    if light:
        color = (255, 255, 255, 0.15 + (0.3 - min(0.3, b)) * 0.2)
    else:
        color = (0, 0, 0, 0.15 + (min(0.9, b) - 0.5) * 0.2)

    blur = 4.0 if 0.3 < b < 0.7 else 3.0
    shadow_opacity = 0.35 if abs(b - 0.5) > 0.3 else 0.25
    return ShadowParams(color=color, blur=blur, offset=(1.0, 1.0), opacity=shadow_opacity)


def derive_appearance(hex_color: str, category_tags: Optional[Iterable[str]] = None) -> AppearanceParams:
    tags = _normalize_tags(category_tags)
    return AppearanceParams(
        blend_mode=blend_mode(hex_color, tags),
        opacity=opacity(hex_color, tags),
        shadow=shadow(hex_color, tags),
    )


# -------------------------------
# Product photo helpers
# -------------------------------

def dominant_color(image: Image.Image, step: int = 10, min_alpha: int = 128) -> str:
    """Average colour of the opaque pixels (every ``step``-th pixel)."""
    rgba = np.asarray(image.convert("RGBA"), dtype=np.uint8).reshape(-1, 4)[::max(1, int(step))]
    opaque = rgba[rgba[:, 3] > int(min_alpha)]
    if opaque.size == 0:
        return FALLBACK_COLOR
    r, g, b = (int(round(float(c))) for c in opaque[:, :3].mean(axis=0))
    return rgb_to_hex(r, g, b).upper()


def tint_product(image: Image.Image, hex_color: str) -> Image.Image:
    """
    Recolour a (white) product photo while keeping its shading.

    Light colours multiply by luminance; dark colours use
    ``rgb * (0.5 + 0.5 * lum)`` so highlights survive. Only pixels that look
    like fabric (alpha >= 50, mean grey in (50, 240)) are touched.
    """
    r, g, b = hex_to_rgb(hex_color)
    if (r, g, b) == (255, 255, 255):
        return image

    rgba = np.array(image.convert("RGBA"), dtype=np.float32)
    rgb = rgba[:, :, :3]
    a = rgba[:, :, 3]

    grey = rgb.mean(axis=2)
    target = (a >= 50) & (grey > 50) & (grey < 240)
    if not np.any(target):
        return image.convert("RGBA")

    lum = (0.299 * rgb[:, :, 0] + 0.587 * rgb[:, :, 1] + 0.114 * rgb[:, :, 2]) / 255.0
    factor = lum if is_light_color(hex_color) else (0.5 + 0.5 * lum)
    tinted = np.stack([r * factor, g * factor, b * factor], axis=2)

    rgb[target] = tinted[target]
    rgba[:, :, :3] = np.clip(np.round(rgb), 0, 255)
    return Image.fromarray(rgba.astype(np.uint8), "RGBA")
