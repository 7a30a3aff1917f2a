# compositing/errors.py
"""
Recoverable error kinds raised by the compositing core.

None of these should crash the process: callers catch ``CompositingError``
and decide what to show (load-failure indicator, default placement, ...).
"""


class CompositingError(Exception):
    kind = "compositing_error"


class InvalidDesignDimensions(CompositingError):
    kind = "invalid_design_dimensions"


class InvalidColorFormat(CompositingError):
    kind = "invalid_color_format"


class InvalidPlacementRect(CompositingError):
    kind = "invalid_placement_rect"


class InvalidWarpParams(CompositingError):
    kind = "invalid_warp_params"


class ImageDecodeFailed(CompositingError):
    kind = "image_decode_failed"


class SurfaceNotReady(CompositingError):
    kind = "surface_not_ready"
