from __future__ import annotations

import io
import logging
from typing import Any, Protocol

from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import DecodeError


logger = logging.getLogger(__name__)


class Codec(Protocol):
    """Decode, resize and re-encode pixel surfaces.

    The pipeline only talks to this interface, so tests (or another imaging
    backend) can supply their own surfaces.
    """

    def decode(self, data: bytes) -> Any:
        """Return a surface for `data`, or raise DecodeError."""
        ...

    def size(self, surface: Any) -> tuple[int, int]:
        ...

    def resize(self, surface: Any, size: tuple[int, int]) -> Any:
        ...

    def encode(self, surface: Any, fmt: str, quality: float) -> bytes | None:
        """Encode at `quality` (0..1). None means the codec produced nothing."""
        ...

    def release(self, surface: Any) -> None:
        ...


def _to_pillow_quality(quality: float) -> int:
    return max(0, min(100, int(round(quality * 100))))


class PillowCodec:
    def decode(self, data: bytes) -> Image.Image:
        if not data:
            raise DecodeError("empty input")

        try:
            with Image.open(io.BytesIO(data)) as im:
                # Animated inputs (GIF/WebP/AVIF) contribute their first frame only.
                im.seek(0)
                im.load()
                # Browsers draw photos upright; honour the camera's EXIF orientation.
                upright = ImageOps.exif_transpose(im)
                if upright.mode in ("RGB", "RGBA"):
                    surface = upright.copy() if upright is im else upright
                elif "A" in upright.getbands() or "transparency" in upright.info:
                    surface = upright.convert("RGBA")
                else:
                    surface = upright.convert("RGB")
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError, EOFError) as e:
            raise DecodeError(str(e) or e.__class__.__name__) from e

        return surface

    def size(self, surface: Image.Image) -> tuple[int, int]:
        return surface.size

    def resize(self, surface: Image.Image, size: tuple[int, int]) -> Image.Image:
        if tuple(surface.size) == tuple(size):
            return surface
        # LANCZOS gives good downscaling quality.
        return surface.resize(size, resample=Image.Resampling.LANCZOS)

    def encode(self, surface: Image.Image, fmt: str, quality: float) -> bytes | None:
        buf = io.BytesIO()
        try:
            # A fresh save drops EXIF and other metadata.
            surface.save(buf, format=fmt, quality=_to_pillow_quality(quality))
        except (OSError, ValueError, KeyError) as e:
            logger.warning("Encoding %s at quality %.2f failed: %s", fmt, quality, e)
            return None
        data = buf.getvalue()
        return data or None

    def release(self, surface: Image.Image) -> None:
        surface.close()
