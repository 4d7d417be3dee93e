import io
import sys
from pathlib import Path

import pytest
from PIL import Image

# Ensure repo root is importable (so `import shop_photos` works without installing).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def image_bytes():
    """Factory for small synthetic images encoded in a given format."""

    def _make(size=(320, 240), fmt="PNG", mode="RGB", color=(200, 120, 40)):
        if mode == "RGBA" and len(color) == 3:
            color = (*color, 128)
        im = Image.new(mode, size, color)
        buf = io.BytesIO()
        im.save(buf, format=fmt)
        return buf.getvalue()

    return _make
