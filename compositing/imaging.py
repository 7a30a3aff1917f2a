# compositing/imaging.py
from __future__ import annotations

import base64
import hashlib
import io
import logging
import os
import threading
from typing import Dict, Optional, Union

import requests
from PIL import Image

from compositing.errors import ImageDecodeFailed
from config import settings

logger = logging.getLogger(__name__)

BitmapSource = Union[Image.Image, bytes, str]

_DECODE_ERRORS = (OSError, ValueError, requests.RequestException, Image.DecompressionBombError)


def _read_bytes(source: str, timeout: float) -> bytes:
    if source.startswith("data:"):
        header, _, payload = source.partition(",")
        if ";base64" not in header:
            raise ValueError("Only base64 data URLs are supported")
        return base64.b64decode(payload, validate=True)

    if source.startswith(("http://", "https://")):
        r = requests.get(source, timeout=timeout)
        r.raise_for_status()
        return r.content

    if not os.path.exists(source):
        raise FileNotFoundError(source)
    with open(source, "rb") as f:
        return f.read()


def _decode(source: BitmapSource, timeout: float, max_side: int) -> Image.Image:
    if isinstance(source, Image.Image):
        img = source
    else:
        data = source if isinstance(source, (bytes, bytearray)) else _read_bytes(str(source), timeout)
        img = Image.open(io.BytesIO(data))
        img.load()  # force full decode; Image.open is lazy

    w, h = img.size
    if w <= 0 or h <= 0:
        raise ValueError(f"Decoded image has no pixels ({w}x{h})")
    if max(w, h) > max_side:
        raise ValueError(f"Image too large ({w}x{h}), max side is {max_side}")

    return img.convert("RGBA")


def decode_bitmap(
    source: BitmapSource,
    timeout: Optional[float] = None,
    max_side: Optional[int] = None,
) -> Image.Image:
    """
    Decode a design/product bitmap into RGBA.

    ``source`` may be a PIL image, raw bytes, a base64 data URL, an http(s)
    URL or a local path. Any failure, including a decode that does not finish
    within ``timeout`` seconds, surfaces as ImageDecodeFailed.
    """
    timeout = float(timeout if timeout is not None else settings.decode_timeout_sec)
    max_side = int(max_side if max_side is not None else settings.max_image_side)

    # One daemon thread per decode: a source that hangs past the deadline is
    # abandoned and cannot hold up later decodes.
    out: Dict[str, object] = {}

    def _run():
        try:
            out["image"] = _decode(source, timeout, max_side)
        except Exception as e:
            out["error"] = e

    t = threading.Thread(target=_run, name="decode", daemon=True)
    t.start()
    t.join(timeout)
    if t.is_alive():
        logger.warning(f"Image decode did not finish within {timeout:.1f}s, abandoning it")
        raise ImageDecodeFailed(f"Image decode did not finish within {timeout:.1f}s")

    err = out.get("error")
    if err is not None and not isinstance(err, _DECODE_ERRORS):
        raise err
    if err is not None:
        logger.warning(f"Image decode failed: {err}")
        raise ImageDecodeFailed(str(err) or type(err).__name__) from err
    return out["image"]


def image_fingerprint(img: Image.Image) -> str:
    """Content hash used as the bitmap id in render-cache keys."""
    h = hashlib.sha1()
    h.update(f"{img.mode}:{img.width}x{img.height}".encode("utf-8"))
    h.update(img.tobytes())
    return h.hexdigest()


def png_bytes(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, "PNG")
    return buf.getvalue()


def to_data_url(img: Image.Image) -> str:
    return "data:image/png;base64," + base64.b64encode(png_bytes(img)).decode("ascii")
