"""
Screenshot acquisition strategies.

Two shapes, one per host OS family:

  DesktopBoundsAcquirer     grab the whole virtual desktop with mss and crop it
                            to the window rectangle (Windows, where GetWindowRect
                            bounds are reliable).
  ExternalUtilityAcquirer   run a platform screenshot CLI against the window id,
                            writing a uniquely named temp file that is read back
                            and always deleted, then decode and downscale.
                            ScreencaptureAcquirer (macOS) and ImportAcquirer
                            (Linux, ImageMagick) differ only in the command line.

Every failure surfaces as CaptureError.
"""

from __future__ import annotations

import itertools
import logging
import os
import shutil
import subprocess
import sys
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

import mss
from mss.exception import ScreenShotError
from PIL import Image

from packages.core.monitor.types import WindowId, WindowInfo
from packages.shared.paths import captures_dir

from .imaging import decode_image, scale_frame

log = logging.getLogger(__name__)

DEFAULT_CAPTURE_TIMEOUT_S = 10.0
DEFAULT_CAPTURE_SCALE = 0.5


class CaptureError(RuntimeError):
    """A screenshot could not be produced for this tick."""


class ScreenshotAcquirer(ABC):
    """Interface for turning a focused window into a bitmap."""

    @abstractmethod
    def capture(self, window: WindowInfo) -> Image.Image:
        """Capture the window. Raises CaptureError on any failure."""
        ...

    def close(self) -> None:
        """Release resources (no-op by default)."""
        pass


class DesktopBoundsAcquirer(ScreenshotAcquirer):
    def _grab_desktop(self) -> Tuple[Image.Image, int, int]:
        """Whole virtual desktop as RGB, plus the screen coordinates of its origin."""
        with mss.mss() as sct:
            desktop = sct.monitors[0]
            shot = sct.grab(desktop)
            img = Image.frombytes("RGB", shot.size, shot.bgra, "raw", "BGRX")
            return img, int(desktop["left"]), int(desktop["top"])

    def capture(self, window: WindowInfo) -> Image.Image:
        bounds = window.bounds
        if bounds is None or bounds.width == 0 or bounds.height == 0:
            raise CaptureError(f"Window has no usable bounds: {bounds}")

        try:
            desktop, origin_x, origin_y = self._grab_desktop()
        except ScreenShotError as e:
            raise CaptureError(f"Desktop capture failed: {e}") from e

        left = min(max(bounds.left - origin_x, 0), desktop.width)
        top = min(max(bounds.top - origin_y, 0), desktop.height)
        right = min(max(bounds.right - origin_x, left), desktop.width)
        bottom = min(max(bounds.bottom - origin_y, top), desktop.height)
        if right == left or bottom == top:
            raise CaptureError(f"Window bounds {bounds} lie outside the desktop")

        return desktop.crop((left, top, right, bottom))


class ExternalUtilityAcquirer(ScreenshotAcquirer):
    utility: str = ""
    suffix: str = ".jpg"

    def __init__(
        self,
        capture_dir: Optional[Union[str, Path]] = None,
        timeout_s: float = DEFAULT_CAPTURE_TIMEOUT_S,
        scale: float = DEFAULT_CAPTURE_SCALE,
    ) -> None:
        self._capture_dir = Path(capture_dir) if capture_dir else captures_dir()
        self._capture_dir.mkdir(parents=True, exist_ok=True)
        self._timeout_s = timeout_s
        self._scale = scale
        self._seq = itertools.count()
        self._executable = shutil.which(self.utility) or self.utility

    @property
    def capture_dir(self) -> Path:
        return self._capture_dir

    @abstractmethod
    def build_command(self, window_id: WindowId, path: str) -> List[str]:
        ...

    def capture(self, window: WindowInfo) -> Image.Image:
        if window.id is None:
            raise CaptureError("Window has no id")

        with self._temp_capture_path() as path:
            self._run_utility(window.id, path)
            try:
                data = path.read_bytes()
            except OSError as e:
                raise CaptureError(f"Could not read capture file {path}: {e}") from e

        try:
            frame = decode_image(data)
        except (OSError, ValueError) as e:
            raise CaptureError(f"Could not decode {self.utility} output: {e}") from e
        return scale_frame(frame, self._scale)

    @contextmanager
    def _temp_capture_path(self) -> Iterator[Path]:
        # ms timestamp + pid + sequence keeps concurrent watchers from colliding
        name = f"{time.time_ns() // 1_000_000}-{os.getpid()}-{next(self._seq)}{self.suffix}"
        path = self._capture_dir / name
        try:
            yield path
        finally:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                log.warning(f"Could not delete temp capture {path}: {e}")

    def _run_utility(self, window_id: WindowId, path: Path) -> None:
        cmd = self.build_command(window_id, str(path))
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self._timeout_s,
            )
        except subprocess.TimeoutExpired:
            raise CaptureError(f"{self.utility} timed out after {self._timeout_s}s") from None
        except FileNotFoundError:
            raise CaptureError(f"{self.utility} executable not found") from None
        except OSError as e:
            raise CaptureError(f"{self.utility} could not be started: {e}") from e

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()[:200]
            raise CaptureError(f"{self.utility} exited with code {result.returncode}: {stderr}")


class ScreencaptureAcquirer(ExternalUtilityAcquirer):
    utility = "screencapture"

    def build_command(self, window_id: WindowId, path: str) -> List[str]:
        # -l window id, -o no shadow, -x no sound
        return [self._executable, "-l", str(window_id), "-o", "-x", "-t", "jpg", path]


class ImportAcquirer(ExternalUtilityAcquirer):
    utility = "import"

    def build_command(self, window_id: WindowId, path: str) -> List[str]:
        return [self._executable, "-window", str(window_id), path]


def select_screenshot_acquirer(
    capture_dir: Optional[Union[str, Path]] = None,
    timeout_s: float = DEFAULT_CAPTURE_TIMEOUT_S,
    scale: float = DEFAULT_CAPTURE_SCALE,
) -> ScreenshotAcquirer:
    if sys.platform == "win32":
        return DesktopBoundsAcquirer()
    if sys.platform == "darwin":
        return ScreencaptureAcquirer(capture_dir, timeout_s=timeout_s, scale=scale)
    return ImportAcquirer(capture_dir, timeout_s=timeout_s, scale=scale)
