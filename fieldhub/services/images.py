"""
Photo downscaling for evidence pictures and avatars.

Phones upload multi-megabyte photos; they are resized to a maximum dimension
and re-encoded as JPEG before going to storage. Anything Pillow cannot decode
is stored untouched.
"""
import io
from typing import Tuple

import structlog
from PIL import Image, ImageOps, UnidentifiedImageError

from ..config import settings


log = structlog.get_logger(__name__)


def shrink_photo(content: bytes, max_dim: int = None, quality: int = None) -> Tuple[bytes, bool]:
    """Return ``(bytes, is_jpeg)``; the original bytes when nothing was gained."""
    max_dim = max_dim or settings.photo_max_dim
    quality = quality or settings.photo_jpeg_quality
    if not content:
        return content, False
    try:
        img = Image.open(io.BytesIO(content))
        # Phone cameras store rotation in EXIF
        img = ImageOps.exif_transpose(img)
        if img.mode in ("RGBA", "LA", "P"):
            img = img.convert("RGBA")
            background = Image.new("RGB", img.size, (255, 255, 255))
            background.paste(img, mask=img.split()[-1])
            img = background
        elif img.mode != "RGB":
            img = img.convert("RGB")

        original_dims = f"{img.width}x{img.height}"
        img.thumbnail((max_dim, max_dim), Image.Resampling.LANCZOS)
        out = io.BytesIO()
        img.save(out, format="JPEG", quality=quality, optimize=True, progressive=True)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        log.info("photo_not_optimized", reason=str(e), size=len(content))
        return content, False

    optimized = out.getvalue()
    if len(optimized) >= len(content):
        return content, False
    log.info(
        "photo_optimized",
        original_size=len(content),
        optimized_size=len(optimized),
        original_dimensions=original_dims,
        optimized_dimensions=f"{img.width}x{img.height}",
    )
    return optimized, True
