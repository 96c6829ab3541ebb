"""
Pillow helpers shared by the acquirers and the monitor: decode, downscale,
percentage crop and base64 PNG encoding.
"""

from __future__ import annotations

import base64
import io
import math
from typing import Tuple

from PIL import Image

from packages.shared.config import CropPercentages

PNG_DATA_URI_PREFIX = "data:image/png;base64,"


def decode_image(data: bytes) -> Image.Image:
    """Decode encoded image bytes (PNG/JPEG/...) into an RGB bitmap."""
    with Image.open(io.BytesIO(data)) as img:
        img.load()
        return img.convert("RGB")


def scale_frame(frame: Image.Image, factor: float) -> Image.Image:
    if factor == 1:
        return frame
    width = max(1, round(frame.width * factor))
    height = max(1, round(frame.height * factor))
    return frame.resize((width, height), Image.Resampling.BILINEAR)


def crop_box(width: int, height: int, crop: CropPercentages) -> Tuple[int, int, int, int]:
    """
    Pixel rectangle (x, y, w, h) for a percentage crop of a width x height image.

    right/bottom are positions, not extents. A degenerate crop (right <= left)
    gives a zero-width rectangle, and the result never leaves the image.
    """
    x = math.floor(crop.left * width / 100)
    y = math.floor(crop.top * height / 100)
    w = math.ceil(crop.right * width / 100 - x)
    h = math.ceil(crop.bottom * height / 100 - y)

    x = min(max(x, 0), width)
    y = min(max(y, 0), height)
    w = max(0, min(w, width - x))
    h = max(0, min(h, height - y))
    return x, y, w, h


def crop_frame(frame: Image.Image, crop: CropPercentages) -> Image.Image:
    x, y, w, h = crop_box(frame.width, frame.height, crop)
    return frame.crop((x, y, x + w, y + h))


def encode_base64_png(frame: Image.Image) -> str:
    """PNG-encode a frame as bare base64 (no data-URI prefix)."""
    buf = io.BytesIO()
    frame.save(buf, format="PNG")
    return base64.b64encode(buf.getvalue()).decode("ascii")


def decode_base64_image(data: str) -> Image.Image:
    if data.startswith(PNG_DATA_URI_PREFIX):
        data = data[len(PNG_DATA_URI_PREFIX):]
    return decode_image(base64.b64decode(data))
