# compositing/warp.py
"""
Fabric warp displacement fields.

A field maps normalised coordinates (u, v) in [0, 1]^2 to an offset (du, dv)
in source pixels. The offset is *subtracted* from the destination pixel to
find where to sample (backward mapping).
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple, Union

import numpy as np

from compositing.errors import InvalidWarpParams

ArrayLike = Union[float, np.ndarray]

# Gaussian envelopes: exp(-dist^2 / sigma^2)
BULGE_SIGMA_SQ = 0.09   # sigma ~ 0.3
PINCH_SIGMA_SQ = 0.04   # sigma ~ 0.2
BULGE_TANGENTIAL = 0.10
PINCH_RIPPLE = 0.15
PINCH_LOBES = 8

# Wave harmonics: (frequency multiplier, relative amplitude)
WAVE_HARMONICS = ((1, 1.0), (2, 0.5), (3, 0.125))


class WarpStyle(str, Enum):
    WAVE = "wave"
    BULGE = "bulge"
    PINCH = "pinch"


class WarpDirection(str, Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"


def _clamp(x: float, lo: float, hi: float) -> float:
    return lo if x < lo else hi if x > hi else x


@dataclass(frozen=True)
class WarpParams:
    style: WarpStyle = WarpStyle.WAVE
    direction: WarpDirection = WarpDirection.HORIZONTAL
    intensity: float = 0.0   # -100..100
    frequency: float = 3.0   # 1..10
    amplitude: float = 10.0  # 1..20
    phase: float = 0.0       # degrees, 0..360

    def __post_init__(self):
        for name in ("intensity", "frequency", "amplitude", "phase"):
            if not math.isfinite(float(getattr(self, name))):
                raise InvalidWarpParams(f"Warp {name} must be finite, got {getattr(self, name)!r}")
        object.__setattr__(self, "style", WarpStyle(self.style))
        object.__setattr__(self, "direction", WarpDirection(self.direction))
        object.__setattr__(self, "intensity", _clamp(float(self.intensity), -100.0, 100.0))
        object.__setattr__(self, "frequency", _clamp(float(self.frequency), 1.0, 10.0))
        object.__setattr__(self, "amplitude", _clamp(float(self.amplitude), 1.0, 20.0))
        object.__setattr__(self, "phase", float(self.phase) % 360.0)

    @property
    def is_identity(self) -> bool:
        return self.intensity == 0.0

    def as_dict(self) -> Dict[str, object]:
        return {
            "style": self.style.value,
            "direction": self.direction.value,
            "intensity": self.intensity,
            "frequency": self.frequency,
            "amplitude": self.amplitude,
            "phase": self.phase,
        }


NO_WARP = WarpParams()


def _wave(params: WarpParams, u: ArrayLike, v: ArrayLike, gain: float) -> Tuple[ArrayLike, ArrayLike]:
    horizontal = params.direction == WarpDirection.HORIZONTAL
    along = u if horizontal else v
    base = 2.0 * math.pi * params.frequency * np.asarray(along, dtype=np.float64)
    phase = math.radians(params.phase)

    d = np.zeros_like(base)
    for mult, rel in WAVE_HARMONICS:
        d = d + rel * np.sin(mult * base + phase)
    d = d * gain

    zero = np.zeros_like(d)
    # Horizontal waves travel along x and push pixels along y
    return (zero, d) if horizontal else (d, zero)


def _radial(u: ArrayLike, v: ArrayLike):
    dx = np.asarray(u, dtype=np.float64) - 0.5
    dy = np.asarray(v, dtype=np.float64) - 0.5
    dist = np.hypot(dx, dy)
    angle = np.arctan2(dy, dx)
    safe = np.where(dist > 0.0, dist, 1.0)
    ux = np.where(dist > 0.0, dx / safe, 0.0)
    uy = np.where(dist > 0.0, dy / safe, 0.0)
    return dist, angle, ux, uy


def _bulge(u: ArrayLike, v: ArrayLike, gain: float) -> Tuple[ArrayLike, ArrayLike]:
    dist, angle, ux, uy = _radial(u, v)
    env = gain * np.exp(-(dist ** 2) / BULGE_SIGMA_SQ)
    du = env * ux + BULGE_TANGENTIAL * env * np.sin(2.0 * angle)
    dv = env * uy + BULGE_TANGENTIAL * env * np.cos(2.0 * angle)
    return du, dv


def _pinch(u: ArrayLike, v: ArrayLike, gain: float) -> Tuple[ArrayLike, ArrayLike]:
    dist, angle, ux, uy = _radial(u, v)
    env = gain * np.exp(-(dist ** 2) / PINCH_SIGMA_SQ)
    du = -env * ux + PINCH_RIPPLE * env * np.sin(PINCH_LOBES * angle)
    dv = -env * uy + PINCH_RIPPLE * env * np.cos(PINCH_LOBES * angle)
    return du, dv


def _field(params: WarpParams, u: ArrayLike, v: ArrayLike, scale: float) -> Tuple[ArrayLike, ArrayLike]:
    gain = params.amplitude * (params.intensity / 100.0) * float(scale)
    if params.style == WarpStyle.WAVE:
        return _wave(params, u, v, gain)
    if params.style == WarpStyle.BULGE:
        return _bulge(u, v, gain)
    return _pinch(u, v, gain)


def generate(params: WarpParams, coord: Tuple[float, float], scale: float = 1.0) -> Tuple[float, float]:
    """Displacement (du, dv) at normalised ``coord`` = (u, v)."""
    if params.is_identity:
        return 0.0, 0.0
    u, v = coord
    du, dv = _field(params, float(u), float(v), scale)
    return float(du), float(dv)


def displacement_field(
    params: WarpParams,
    width: int,
    height: int,
    scale: float = 1.0,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Sampled field for a ``width`` x ``height`` working canvas.

    Returns two float32 arrays of shape (height, width). Pixel (x, y) maps to
    (u, v) = (x / width, y / height).
    """
    if params.is_identity or width <= 0 or height <= 0:
        return (
            np.zeros((max(0, height), max(0, width)), dtype=np.float32),
            np.zeros((max(0, height), max(0, width)), dtype=np.float32),
        )

    u = np.arange(width, dtype=np.float64) / float(width)
    v = np.arange(height, dtype=np.float64) / float(height)
    uu, vv = np.meshgrid(u, v)
    du, dv = _field(params, uu, vv, scale)
    return (
        np.broadcast_to(du, uu.shape).astype(np.float32),
        np.broadcast_to(dv, uu.shape).astype(np.float32),
    )


def max_displacement(params: WarpParams, scale: float = 1.0) -> float:
    """Upper bound on |(du, dv)| anywhere in the field."""
    gain = abs(params.amplitude * (params.intensity / 100.0) * float(scale))
    if params.is_identity:
        return 0.0
    if params.style == WarpStyle.WAVE:
        return gain * sum(rel for _, rel in WAVE_HARMONICS)
    if params.style == WarpStyle.BULGE:
        return gain * (1.0 + BULGE_TANGENTIAL)
    return gain * (1.0 + PINCH_RIPPLE)
