# config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# Load .env (ignored in prod if not present)
load_dotenv()


class ConfigError(RuntimeError):
    pass


def _opt(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    if v is None:
        return default
    v = str(v).strip()
    return v if v else default


def _opt_bool(name: str, default: bool = False) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return str(v).strip().lower() in ("1", "true", "yes", "y", "on")


def _opt_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None:
        return default
    try:
        return int(str(v).strip())
    except Exception:
        raise ConfigError(f"Invalid integer for {name}: {v!r}")


def _opt_float(name: str, default: float) -> float:
    v = os.getenv(name)
    if v is None:
        return default
    try:
        return float(str(v).strip())
    except Exception:
        raise ConfigError(f"Invalid float for {name}: {v!r}")


@dataclass(frozen=True)
class Settings:
    # Geometry
    reference_canvas: int  # admin canvas edge (placement rects are authored here)
    preview_width: int
    preview_height: int

    # Decoding
    decode_timeout_sec: float
    max_image_side: int

    # Rendering
    render_cache_size: int  # 0 disables the cache
    resize_debounce_sec: float
    fallback_on_invalid_placement: bool
    detect_silhouette: bool

    # Export
    output_dir: str
    write_debug: bool


def load_settings() -> Settings:
    reference_canvas = _opt_int("MOCKUP_REFERENCE_CANVAS", 400)
    if reference_canvas <= 0:
        raise ConfigError("MOCKUP_REFERENCE_CANVAS must be positive")

    preview_w = _opt_int("MOCKUP_PREVIEW_WIDTH", 800)
    preview_h = _opt_int("MOCKUP_PREVIEW_HEIGHT", 800)
    if preview_w <= 0 or preview_h <= 0:
        raise ConfigError("MOCKUP_PREVIEW_WIDTH and MOCKUP_PREVIEW_HEIGHT must be positive")

    decode_timeout = _opt_float("MOCKUP_DECODE_TIMEOUT_SEC", 15.0)
    if decode_timeout <= 0:
        raise ConfigError("MOCKUP_DECODE_TIMEOUT_SEC must be positive")

    max_side = _opt_int("MOCKUP_MAX_IMAGE_SIDE", 6000)
    if max_side <= 0:
        raise ConfigError("MOCKUP_MAX_IMAGE_SIDE must be positive")

    cache_size = _opt_int("MOCKUP_RENDER_CACHE_SIZE", 32)
    if cache_size < 0:
        raise ConfigError("MOCKUP_RENDER_CACHE_SIZE must be >= 0")

    debounce = _opt_float("MOCKUP_RESIZE_DEBOUNCE_SEC", 0.15)
    if debounce < 0:
        raise ConfigError("MOCKUP_RESIZE_DEBOUNCE_SEC must be >= 0")

    return Settings(
        reference_canvas=reference_canvas,
        preview_width=preview_w,
        preview_height=preview_h,
        decode_timeout_sec=decode_timeout,
        max_image_side=max_side,
        render_cache_size=cache_size,
        resize_debounce_sec=debounce,
        fallback_on_invalid_placement=_opt_bool("MOCKUP_FALLBACK_ON_INVALID_PLACEMENT", True),
        detect_silhouette=_opt_bool("MOCKUP_DETECT_SILHOUETTE", False),
        output_dir=_opt("MOCKUP_OUTPUT_DIR", "outputs") or "outputs",
        write_debug=_opt_bool("MOCKUP_WRITE_DEBUG", False),
    )


# Fail fast at import time
settings = load_settings()
