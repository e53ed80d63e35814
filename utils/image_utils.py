"""Image helpers: MIME detection, readability check, downscaling and encoding for recognition APIs."""

from __future__ import annotations

import base64
import io
from pathlib import Path

from PIL import Image, UnidentifiedImageError

MIME_BY_EXTENSION = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
}
EXTENSION_BY_MIME = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/webp": ".webp",
}
SUPPORTED_MIME_TYPES = frozenset(EXTENSION_BY_MIME)
_PIL_FORMAT_BY_MIME = {
    "image/png": "PNG",
    "image/jpeg": "JPEG",
    "image/jpg": "JPEG",
    "image/webp": "WEBP",
}
JPEG_QUALITY = 90


def mime_from_name(name: str) -> str | None:
    """MIME type from file extension; None for unsupported extensions."""
    return MIME_BY_EXTENSION.get(Path(name).suffix.lower())


def extension_for(mime_type: str, fallback_name: str = "") -> str:
    ext = EXTENSION_BY_MIME.get((mime_type or "").lower())
    if ext:
        return ext
    return Path(fallback_name).suffix.lower() or ".bin"


def is_readable_image(data: bytes) -> bool:
    """True if Pillow can identify and verify the bytes as an image."""
    if not data:
        return False
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
        return False
    return True


def downscale_image(data: bytes, mime_type: str, max_px: int) -> bytes:
    """Resize so the longest side is at most max_px, keeping the original format. Unchanged when already small."""
    if max_px <= 0:
        return data
    with Image.open(io.BytesIO(data)) as img:
        w, h = img.size
        if max(w, h) <= max_px:
            return data
        ratio = max_px / max(w, h)
        resized = img.resize((max(1, int(w * ratio)), max(1, int(h * ratio))), Image.Resampling.LANCZOS)
    fmt = _PIL_FORMAT_BY_MIME.get(mime_type.lower(), "PNG")
    if fmt == "JPEG" and resized.mode not in ("RGB", "L"):
        resized = resized.convert("RGB")
    buf = io.BytesIO()
    if fmt == "JPEG":
        resized.save(buf, format=fmt, quality=JPEG_QUALITY)
    else:
        resized.save(buf, format=fmt)
    return buf.getvalue()


def image_to_base64(image_bytes: bytes) -> str:
    return base64.b64encode(image_bytes).decode("ascii")


def image_to_data_url(image_bytes: bytes, media_type: str = "image/jpeg") -> str:
    """Encode image bytes as data URL for vision API."""
    return f"data:{media_type};base64,{image_to_base64(image_bytes)}"
