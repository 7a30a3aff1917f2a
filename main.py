# main.py

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

import os
import uuid
import logging
from threading import Thread
from typing import Dict, Any, Optional, Literal

# ----------------------------
# Central config (loads .env, validates)
# ----------------------------
try:
    from config import settings  # config.py in project root
except Exception as e:
    print("CONFIG ERROR:", e)
    raise

from compositing.errors import CompositingError, ImageDecodeFailed, InvalidPlacementRect
from compositing.interaction import PlacementState
from compositing.mockup import composite, export_to_dir
from compositing.models import Design, Product
from compositing.progress_store import init_job, update_job, fail_job, get_job, has_job
from compositing.warp import WarpParams

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("mockup")


# ----------------------------
# FastAPI setup
# ----------------------------
app = FastAPI()


@app.on_event("startup")
def _startup_log():
    # settings import already validates; this is for clear logs
    print("=== MOCKUP COMPOSITOR CONFIG ===")
    print("REFERENCE_CANVAS:", settings.reference_canvas)
    print("PREVIEW_SIZE:", f"{settings.preview_width}x{settings.preview_height}")
    print("DECODE_TIMEOUT_SEC:", settings.decode_timeout_sec)
    print("MAX_IMAGE_SIDE:", settings.max_image_side)
    print("RENDER_CACHE_SIZE:", settings.render_cache_size or "(disabled)")
    print("FALLBACK_ON_INVALID_PLACEMENT:", settings.fallback_on_invalid_placement)
    print("DETECT_SILHOUETTE:", settings.detect_silhouette)
    print("OUTPUT_DIR:", settings.output_dir)
    print("================================")


os.makedirs(settings.output_dir, exist_ok=True)
app.mount("/outputs", StaticFiles(directory=settings.output_dir), name="outputs")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CompositingError)
def _compositing_error(request: Request, exc: CompositingError):
    status = 422 if isinstance(exc, ImageDecodeFailed) else 400
    return JSONResponse(status_code=status, content={"error": exc.kind, "detail": str(exc)})


# ----------------------------
# Request models
# ----------------------------
class WarpRequest(BaseModel):
    style: Literal["wave", "bulge", "pinch"] = "wave"
    direction: Literal["horizontal", "vertical"] = "horizontal"
    intensity: float = 0.0
    frequency: float = 3.0
    amplitude: float = 10.0
    phase: float = 0.0


class CompositeRequest(BaseModel):
    # catalog record: {imageUrl, placementRect, colorOptions, categoryTags, polygonMask, ...}
    product: Dict[str, Any]
    design: str  # data URL, http(s) URL or server path
    maintain_aspect_ratio: bool = True

    placement_state: Optional[Dict[str, Any]] = None
    warp: WarpRequest = WarpRequest()

    color: Optional[str] = None
    recolor_product: bool = False

    surface_width: Optional[int] = None
    surface_height: Optional[int] = None


class ExportRequest(CompositeRequest):
    user_id: Optional[str] = None
    write_debug: Optional[bool] = None


def _warp_params(w: WarpRequest) -> WarpParams:
    return WarpParams(
        style=w.style,
        direction=w.direction,
        intensity=w.intensity,
        frequency=w.frequency,
        amplitude=w.amplitude,
        phase=w.phase,
    )


def _placement_state(data: Optional[Dict[str, Any]]) -> Optional[PlacementState]:
    try:
        return PlacementState.from_dict(data)
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise InvalidPlacementRect(f"Malformed placement state: {data!r}") from e


def _surface(req: CompositeRequest):
    if req.surface_width is None and req.surface_height is None:
        return None
    w = int(req.surface_width or settings.preview_width)
    h = int(req.surface_height or settings.preview_height)
    if w <= 0 or h <= 0:
        raise HTTPException(status_code=400, detail="Surface size must be positive")
    return (w, h)


# ----------------------------
# Export runner
# ----------------------------
def _run_export(job_id: str, req: ExportRequest):
    job_dir = os.path.join(settings.output_dir, job_id)
    os.makedirs(job_dir, exist_ok=True)

    try:
        update_job(job_id, status="running", step="decode", progress=10, message="Decoding images")
        product = Product.from_record(req.product)
        design = Design(image=req.design, maintain_aspect_ratio=req.maintain_aspect_ratio)

        update_job(job_id, step="render", progress=40, message="Rendering full resolution")
        result = export_to_dir(
            product,
            design,
            job_dir,
            placement_state=_placement_state(req.placement_state),
            warp_params=_warp_params(req.warp),
            color=req.color,
            recolor_product=req.recolor_product,
            write_debug=req.write_debug,
        )

        def rel(p: str) -> str:
            return "/outputs/" + os.path.relpath(p, settings.output_dir).replace(os.sep, "/")

        result["url"] = rel(result.pop("path"))
        result["debug"] = [rel(p) for p in result.get("debug", [])]

        update_job(job_id, status="done", step="done", progress=100, message="Export ready", result=result)

    except CompositingError as e:
        logger.warning(f"Export {job_id} failed: {e}")
        fail_job(job_id, str(e), kind=e.kind)
    except Exception as e:
        logger.exception(f"Export {job_id} crashed")
        fail_job(job_id, str(e), kind="internal_error")


# ----------------------------
# Endpoints
# ----------------------------
@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/composite")
def composite_preview(req: CompositeRequest):
    product = Product.from_record(req.product)
    design = Design(image=req.design, maintain_aspect_ratio=req.maintain_aspect_ratio)

    rendered = composite(
        product,
        design,
        placement_state=_placement_state(req.placement_state),
        warp_params=_warp_params(req.warp),
        surface_size=_surface(req),
        color=req.color,
        recolor_product=req.recolor_product,
    )
    out = rendered.as_dict()
    out["image"] = rendered.to_data_url()
    return out


@app.post("/export")
def export_mockup(req: ExportRequest):
    job_id = str(uuid.uuid4())
    init_job(job_id, product_id=str(req.product.get("id") or ""), user_id=req.user_id)

    t = Thread(target=_run_export, args=(job_id, req), daemon=True)
    t.start()

    return {"job_id": job_id}


@app.get("/job/{job_id}/status")
def job_status(job_id: str):
    return get_job(job_id)


@app.get("/job/{job_id}")
def get_job_results(job_id: str):
    if not has_job(job_id):
        raise HTTPException(status_code=404, detail="Job not found")

    job = get_job(job_id)
    return JSONResponse(
        {
            "job_id": job_id,
            "status": job.get("status"),
            "result": job.get("result"),
            "error": job.get("error"),
            "error_kind": job.get("error_kind"),
        }
    )
