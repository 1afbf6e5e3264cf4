from __future__ import annotations

import io

from PIL import Image, UnidentifiedImageError


def is_decodable_image(data: bytes) -> bool:
    """True when data holds an image Pillow can open and verify."""
    if not data:
        return False
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
    except (Image.DecompressionBombError, UnidentifiedImageError, OSError, ValueError, SyntaxError):
        return False
    return True


def encode_jpeg(data: bytes, *, quality: int) -> bytes:
    """
    Re-encode an image payload as JPEG for upload.

    Alpha and palette images are flattened to RGB since JPEG has no alpha.
    Raises ValueError when the payload is not a readable image.
    """
    if not data:
        raise ValueError("image payload is empty")

    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            if img.mode not in ("RGB", "L"):
                img = img.convert("RGB")
            out = io.BytesIO()
            img.save(out, format="JPEG", quality=int(quality))
    except (Image.DecompressionBombError, UnidentifiedImageError, OSError) as e:
        raise ValueError(f"unreadable image: {e}") from e

    return out.getvalue()
