# compositing/session.py
"""
Editing session: the explicit context that carries a product, the user's
design and the current placement between the editor, preview and save steps.

Lifecycle: created when a design is selected, closed on save or when the user
navigates away. Nothing here is process-global.
"""
from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from enum import Enum
from typing import Any, Callable, Dict, Iterator, Optional, Tuple

from compositing.appearance import hex_to_rgb
from compositing.debounce import Debouncer
from compositing.errors import ImageDecodeFailed, SurfaceNotReady
from compositing.interaction import InteractionController, PlacementState
from compositing.mockup import RenderedBitmap, Scene, build_scene, export_full_resolution, render_scene
from compositing.models import Bitmap, Product
from compositing.imaging import BitmapSource
from compositing.render_cache import RenderCache
from compositing.warp import NO_WARP, WarpParams
from config import settings

logger = logging.getLogger(__name__)

PersistFn = Callable[[str, Dict[str, Any]], Any]


class DecodeState(str, Enum):
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


class EditorSession:
    def __init__(
        self,
        product: Product,
        user_id: Optional[str] = None,
        surface_size: Optional[Tuple[int, int]] = None,
        cache: Optional[RenderCache] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.product = product
        self.user_id = user_id
        self.surface_size = tuple(surface_size or (settings.preview_width, settings.preview_height))
        self.cache = cache if cache is not None else RenderCache(settings.render_cache_size)
        self.warp: WarpParams = NO_WARP
        self.color: Optional[str] = None
        self.recolor_product = False
        self.maintain_aspect_ratio = True
        self.closed = False

        self.product_state = DecodeState.PENDING
        self.design_state = DecodeState.PENDING
        self._product: Optional[Bitmap] = None
        self._design: Optional[Bitmap] = None
        self._scene: Optional[Scene] = None
        self._controller: Optional[InteractionController] = None
        self._resize = Debouncer(settings.resize_debounce_sec, clock=clock)

    # -------------------------------
    # Loading
    # -------------------------------

    def load_product(self, timeout: Optional[float] = None) -> Bitmap:
        self._check_open()
        try:
            self._product = Bitmap.load(self.product.image, timeout=timeout)
        except ImageDecodeFailed:
            self.product_state = DecodeState.FAILED
            raise
        self.product_state = DecodeState.READY
        self._reset_geometry()
        return self._product

    def load_design(
        self,
        source: BitmapSource,
        maintain_aspect_ratio: bool = True,
        timeout: Optional[float] = None,
    ) -> Bitmap:
        """Decode a new design; placement state starts fresh."""
        self._check_open()
        old = self._design
        try:
            bitmap = Bitmap.load(source, timeout=timeout)
        except ImageDecodeFailed:
            self.design_state = DecodeState.FAILED
            raise

        if old is not None:
            self._invalidate(old.id)
        self._design = bitmap
        self.maintain_aspect_ratio = maintain_aspect_ratio
        self.design_state = DecodeState.READY
        self._controller = None
        self._reset_geometry()
        return bitmap

    @property
    def ready(self) -> bool:
        return self.product_state == DecodeState.READY and self.design_state == DecodeState.READY

    def _check_open(self) -> None:
        if self.closed:
            raise SurfaceNotReady("Editor session is closed")

    def _require_ready(self) -> None:
        self._check_open()
        for label, state in (("product", self.product_state), ("design", self.design_state)):
            if state == DecodeState.FAILED:
                raise ImageDecodeFailed(f"The {label} image failed to decode")
            if state == DecodeState.PENDING:
                raise SurfaceNotReady(f"The {label} image has not been decoded yet")

    # -------------------------------
    # Geometry
    # -------------------------------

    def _reset_geometry(self) -> None:
        self._scene = None

    @property
    def scene(self) -> Scene:
        self._require_ready()
        if self._scene is None:
            self._scene = build_scene(
                self.product,
                self._product,
                self._design,
                self.surface_size,
                self.color,
                self.maintain_aspect_ratio,
            )
            if self._controller is None:
                self._controller = InteractionController(self._scene.fit, self._scene.bounds)
            else:
                self._controller.rebind(self._scene.fit, self._scene.bounds)
        return self._scene

    @property
    def controller(self) -> InteractionController:
        self.scene  # builds the controller on first use
        return self._controller

    @property
    def state(self) -> PlacementState:
        return self.controller.state

    def on_viewport_resize(self, width: int, height: int, now: Optional[float] = None) -> None:
        """Record a resize; geometry is recomputed once resizes settle."""
        self._resize.submit((int(width), int(height)), now=now)

    def apply_pending_resize(self, now: Optional[float] = None, force: bool = False) -> bool:
        size = self._resize.flush() if force else self._resize.poll(now=now)
        if size is None:
            return False
        if size == self.surface_size:
            return False
        logger.debug(f"Viewport resized to {size[0]}x{size[1]}")
        self.surface_size = size
        self._reset_geometry()
        return True

    # -------------------------------
    # Gestures and parameters
    # -------------------------------

    @contextmanager
    def gesture(self) -> Iterator["EditorSession"]:
        """Continuous drag/resize/rotate: renders inside skip the cache."""
        with self.controller.gesture(), self.cache.bypassed():
            yield self

    def drag_to(self, point: Tuple[float, float]) -> PlacementState:
        return self.controller.drag_to(point)

    def resize_to(self, scale: float) -> PlacementState:
        return self.controller.resize_to(scale)

    def rotate_to(self, angle: float) -> PlacementState:
        return self.controller.rotate_to(angle)

    def set_warp(self, params: WarpParams) -> None:
        if params != self.warp and self._design is not None:
            self._invalidate(self._design.id)
        self.warp = params

    def set_color(self, hex_color: Optional[str], recolor_product: Optional[bool] = None) -> None:
        if hex_color:
            hex_to_rgb(hex_color)
        if hex_color != self.color and self._design is not None:
            self._invalidate(self._design.id)
        self.color = hex_color
        if recolor_product is not None:
            self.recolor_product = bool(recolor_product)
        self._reset_geometry()

    def _invalidate(self, design_id: str) -> None:
        self.cache.invalidate(lambda key: key[0] == design_id)

    # -------------------------------
    # Output
    # -------------------------------

    def render(self) -> RenderedBitmap:
        self.apply_pending_resize()
        scene = self.scene
        return render_scene(
            scene,
            self.state,
            self.warp,
            recolor_product=self.recolor_product,
            cache=self.cache,
        )

    def export(self) -> RenderedBitmap:
        self._require_ready()
        return export_full_resolution(
            self.product,
            self._design,
            self.state,
            self.warp,
            color=self.color,
            recolor_product=self.recolor_product,
        )

    def save(self, persist: PersistFn) -> Any:
        """
        Hand the export-resolution render to ``persist`` as a PNG data URL with
        ``{"productId", "userId"}``, then close the session.
        """
        rendered = self.export()
        meta = {"productId": self.product.id, "userId": self.user_id}
        result = persist(rendered.to_data_url(), meta)
        self.close()
        return result

    def close(self) -> None:
        if self.closed:
            return
        if self._design is not None:
            self._invalidate(self._design.id)
        self._product = None
        self._design = None
        self._scene = None
        self._controller = None
        self.closed = True
        logger.debug(f"Closed editor session for product {self.product.id!r}")
