import json
import os
import time

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from compositing.imaging import to_data_url
from config import settings
from main import app

client = TestClient(app)


@pytest.fixture
def payload():
    product = Image.new("RGBA", (400, 600), (240, 240, 240, 255))
    design = Image.new("RGBA", (200, 100), (200, 20, 20, 255))
    return {
        "product": {
            "id": "tee-9",
            "imageUrl": to_data_url(product),
            "placementRect": {
                "x": 100, "y": 100, "width": 100, "height": 100,
                "xPercent": 25, "yPercent": 25, "widthPercent": 25, "heightPercent": 25,
            },
            "colorOptions": ["#F0F0F0", "#111111"],
            "categoryTags": ["T-Shirts"],
        },
        "design": to_data_url(design),
        "surface_width": 800,
        "surface_height": 600,
    }


def _wait_for(job_id, timeout=20.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        job = client.get(f"/job/{job_id}/status").json()
        if job["status"] in ("done", "error"):
            return job
        time.sleep(0.05)
    raise AssertionError(f"job {job_id} did not finish")


def test_health():
    assert client.get("/health").json() == {"status": "ok"}


def test_composite_preview(payload):
    r = client.post("/composite", json=payload)
    assert r.status_code == 200
    body = r.json()
    assert body["image"].startswith("data:image/png;base64,")
    assert (body["width"], body["height"]) == (800, 600)
    assert body["productBounds"] == {"x": 200.0, "y": 0.0, "width": 400.0, "height": 600.0}
    assert body["appearance"]["blendMode"] == "multiply"


def test_composite_with_warp_and_state(payload):
    payload["warp"] = {"style": "wave", "intensity": 60, "frequency": 2}
    payload["placement_state"] = {"position": {"u": 0.5, "v": 0.4}, "scale": 1.5, "rotation": 20}
    payload["color"] = "#111111"
    r = client.post("/composite", json=payload)
    assert r.status_code == 200
    body = r.json()
    assert body["appearance"]["blendMode"] == "screen"
    assert body["placementState"]["rotation"] == pytest.approx(20)


def test_decode_failure_is_422(payload):
    payload["design"] = "data:image/png;base64,AAAA"
    r = client.post("/composite", json=payload)
    assert r.status_code == 422
    assert r.json()["error"] == "image_decode_failed"


def test_bad_colour_is_400(payload):
    payload["color"] = "#XYZXYZ"
    r = client.post("/composite", json=payload)
    assert r.status_code == 400
    assert r.json()["error"] == "invalid_color_format"


def test_malformed_state_is_400(payload):
    payload["placement_state"] = {"scale": "huge"}
    r = client.post("/composite", json=payload)
    assert r.status_code == 400
    assert r.json()["error"] == "invalid_placement_rect"


def test_unknown_warp_style_rejected(payload):
    payload["warp"] = {"style": "twist"}
    assert client.post("/composite", json=payload).status_code == 422


def test_export_job(payload):
    payload["write_debug"] = True
    job_id = client.post("/export", json=payload).json()["job_id"]

    job = _wait_for(job_id)
    assert job["status"] == "done", job

    result = client.get(f"/job/{job_id}").json()["result"]
    assert result["url"] == f"/outputs/{job_id}/mockup.png"
    assert (result["width"], result["height"]) == (400, 600)
    assert os.path.exists(os.path.join(settings.output_dir, job_id, "mockup.png"))
    assert len(result["debug"]) == 3

    assert client.get(result["url"]).status_code == 200


def test_export_failure_is_recorded(payload):
    payload["product"]["imageUrl"] = "/nope/product.png"
    job_id = client.post("/export", json=payload).json()["job_id"]

    job = _wait_for(job_id)
    assert job["status"] == "error"
    assert job["error_kind"] == "image_decode_failed"


def test_unknown_job():
    assert client.get("/job/does-not-exist").status_code == 404
    assert client.get("/job/does-not-exist/status").json()["status"] == "unknown"


def _post_raw(path, payload):
    # json.dumps writes NaN/Infinity literals, which the JSON parser on the server accepts
    return client.post(path, content=json.dumps(payload), headers={"Content-Type": "application/json"})


@pytest.mark.parametrize(
    "state",
    [
        {"scale": float("nan")},
        {"rotation": float("inf")},
        {"position": {"u": float("nan"), "v": 0.5}},
    ],
)
def test_non_finite_state_is_400(payload, state):
    payload["placement_state"] = state
    r = _post_raw("/composite", payload)
    assert r.status_code == 400
    assert r.json()["error"] == "invalid_placement_rect"


def test_non_finite_warp_is_400(payload):
    payload["warp"] = {"style": "bulge", "intensity": float("nan")}
    r = _post_raw("/composite", payload)
    assert r.status_code == 400
    assert r.json()["error"] == "invalid_warp_params"
