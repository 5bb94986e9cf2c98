"""PNG encoding/decoding for base64 frame transport over ZMQ."""

import base64
import binascii
import io

import numpy as np
from PIL import Image, UnidentifiedImageError


def encode_png(frame: np.ndarray) -> bytes:
    """Encode an (H, W, 3|4) uint8 frame or (H, W) mask to PNG bytes.

    PNG is lossless, so sorted output reaches the client byte-exact.
    """
    img = Image.fromarray(np.ascontiguousarray(frame, dtype=np.uint8))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def decode_png(data: bytes, *, grayscale: bool = False) -> np.ndarray:
    """Decode image bytes to RGBA (H, W, 4), or (H, W) uint8 when grayscale.

    Raises ValueError if the bytes are not a readable image.
    """
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError(f"Unreadable image: {e}") from e
    img = img.convert("L" if grayscale else "RGBA")
    return np.array(img, dtype=np.uint8)


def encode_b64_png(frame: np.ndarray) -> str:
    return base64.b64encode(encode_png(frame)).decode("ascii")


def decode_b64(data: str) -> bytes:
    """Strict base64 decode. Raises ValueError on malformed input."""
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, TypeError) as e:
        raise ValueError(f"Invalid base64 payload: {e}") from e
