import os
import tempfile

import pytest
from PIL import Image

# Must be set before config is imported anywhere
os.environ.setdefault("MOCKUP_OUTPUT_DIR", tempfile.mkdtemp(prefix="mockup-tests-"))
os.environ.setdefault("MOCKUP_WRITE_DEBUG", "false")
os.environ.setdefault("MOCKUP_FALLBACK_ON_INVALID_PLACEMENT", "true")


@pytest.fixture
def solid():
    def _make(size, color=(255, 255, 255, 255)):
        return Image.new("RGBA", size, color)

    return _make


@pytest.fixture
def shirt(solid):
    """400x400 opaque white product photo."""
    return solid((400, 400), (255, 255, 255, 255))


@pytest.fixture
def red_design(solid):
    return solid((200, 100), (255, 0, 0, 255))


@pytest.fixture(autouse=True)
def _clear_render_cache():
    from compositing.mockup import get_cache

    get_cache().invalidate()
    yield
    get_cache().invalidate()
