# compositing/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from PIL import Image

from compositing.appearance import hex_to_rgb
from compositing.errors import InvalidPlacementRect
from compositing.geometry import PlacementRect, Point, Rect, letterbox_bounds, parse_placement
from compositing.imaging import BitmapSource, decode_bitmap, image_fingerprint


def _points(raw: Any) -> List[Point]:
    if not raw:
        return []
    pts: List[Point] = []
    try:
        for p in raw:
            if isinstance(p, dict):
                pts.append((float(p["x"]), float(p["y"])))
            else:
                pts.append((float(p[0]), float(p[1])))
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise InvalidPlacementRect(f"Malformed polygon mask: {raw!r}") from e
    return pts


@dataclass
class Product:
    """
    Product record as supplied by the catalog service.

    ``polygon_mask`` is in reference-canvas units, or percent of the product
    when ``polygon_relative`` is set.
    """

    id: str
    image: BitmapSource
    placement: Optional[PlacementRect] = None
    color_options: List[str] = field(default_factory=list)
    category_tags: List[str] = field(default_factory=list)
    polygon_mask: List[Point] = field(default_factory=list)
    polygon_relative: bool = False

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Product":
        placement = record.get("placementRect") or record.get("placeholder")
        tags = record.get("categoryTags") or record.get("categories") or []
        if isinstance(tags, str):
            tags = [tags]
        polygon = record.get("polygonMask") or record.get("customShapePoints") or []

        colors = [str(c) for c in (record.get("colorOptions") or [])]
        for c in colors:
            hex_to_rgb(c)  # raises InvalidColorFormat early

        return cls(
            id=str(record.get("id") or record.get("_id") or ""),
            image=record.get("imageUrl") or record.get("image") or "",
            placement=parse_placement(placement),
            color_options=colors,
            category_tags=[str(t) for t in tags],
            polygon_mask=_points(polygon),
            polygon_relative=bool(record.get("relative", False)),
        )


@dataclass
class Bitmap:
    """A decoded RGBA bitmap with a stable content id."""

    image: Image.Image
    id: str

    @property
    def size(self) -> Tuple[int, int]:
        return self.image.size

    @classmethod
    def load(cls, source: BitmapSource, timeout: Optional[float] = None) -> "Bitmap":
        img = decode_bitmap(source, timeout=timeout)
        return cls(image=img, id=image_fingerprint(img))


@dataclass
class Design:
    """A user's uploaded artwork (PNG/JPEG)."""

    image: BitmapSource
    maintain_aspect_ratio: bool = True


@dataclass(frozen=True)
class RenderSurface:
    """Drawing area plus where the (letterboxed) product photo sits in it."""

    width: int
    height: int
    product_bounds: Rect

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    @classmethod
    def for_product(cls, product_size: Tuple[int, int], surface_size: Tuple[int, int]) -> "RenderSurface":
        w, h = int(surface_size[0]), int(surface_size[1])
        return cls(width=w, height=h, product_bounds=letterbox_bounds(product_size, (w, h)))
