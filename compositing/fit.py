# compositing/fit.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

from compositing.errors import InvalidDesignDimensions
from compositing.geometry import Rect


@dataclass(frozen=True)
class FitResult:
    x: float
    y: float
    width: float
    height: float
    scale: float

    @property
    def rect(self) -> Rect:
        return Rect(self.x, self.y, self.width, self.height)

    def as_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height, "scale": self.scale}


def fit(design_size: Tuple[float, float], target: Rect, maintain_aspect_ratio: bool = True) -> FitResult:
    """
    Size a design into ``target``.

    With ``maintain_aspect_ratio`` the design is contained (letterboxed) and
    centred inside the target; otherwise it is stretched to the target exactly.
    ``scale`` is always output width / design width.
    """
    dw, dh = design_size
    if dw <= 0 or dh <= 0:
        raise InvalidDesignDimensions(f"Design dimensions must be positive, got {dw}x{dh}")

    if not maintain_aspect_ratio:
        return FitResult(target.x, target.y, target.width, target.height, target.width / float(dw))

    design_aspect = dw / float(dh)
    target_aspect = target.width / float(target.height) if target.height > 0 else float("inf")

    if design_aspect > target_aspect:
        # Design is wider than the target (relative to height)
        width = float(target.width)
        height = width / design_aspect
    else:
        height = float(target.height)
        width = height * design_aspect

    x = target.x + (target.width - width) / 2.0
    y = target.y + (target.height - height) / 2.0
    return FitResult(x, y, width, height, width / float(dw))
