from __future__ import annotations

from typing import Optional

from PIL import Image, ImageChops


def difference_percent(a: Image.Image, b: Image.Image, threshold: int = 0) -> float:
    """
    Percentage (0-100) of pixels where any channel differs by more than threshold.

    Frames of different size are 100% different. Two empty frames of the same
    size are identical.
    """
    if a.size != b.size:
        return 100.0
    total = a.width * a.height
    if total == 0:
        return 0.0

    if a.mode != "RGB":
        a = a.convert("RGB")
    if b.mode != "RGB":
        b = b.convert("RGB")

    diff = ImageChops.difference(a, b)
    r, g, bl = diff.split()
    per_pixel = ImageChops.lighter(ImageChops.lighter(r, g), bl)
    mask = per_pixel.point(lambda p: 255 if p > threshold else 0)
    changed = mask.histogram()[255]
    return changed * 100.0 / total


class ChangeDetector:
    """
    Keeps the last accepted cropped frame and compares new frames against it.

    Only accept() replaces the retained frame; is_different() never mutates.
    Owned by a single monitor thread.
    """

    def __init__(self) -> None:
        self._last: Optional[Image.Image] = None

    @property
    def last_frame(self) -> Optional[Image.Image]:
        return self._last

    def is_different(self, frame: Optional[Image.Image]) -> bool:
        if frame is None or self._last is None:
            return True
        return difference_percent(frame, self._last, threshold=0) > 0

    def accept(self, frame: Image.Image) -> None:
        self._last = frame

    def reset(self) -> None:
        self._last = None
