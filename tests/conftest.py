from __future__ import annotations

from typing import Iterable, List, Optional

import pytest
from PIL import Image

from packages.core.capture.acquirer import CaptureError, ScreenshotAcquirer
from packages.core.monitor.types import WindowBounds, WindowInfo
from packages.core.monitor.window_probe import WindowProbe
from packages.shared.config import EmrConfig

VSC_TITLE = "Visual Studio Code — file.js"


class FakeProbe(WindowProbe):
    """Returns the same window every tick (or None)."""

    def __init__(self, window: Optional[WindowInfo]) -> None:
        self.window = window
        self.calls = 0

    def _query(self) -> Optional[WindowInfo]:
        self.calls += 1
        return self.window


class FakeAcquirer(ScreenshotAcquirer):
    """Hands out queued frames; an Exception in the queue is raised instead."""

    def __init__(self, frames: Iterable[object] = ()) -> None:
        self.queue: List[object] = list(frames)
        self.calls = 0

    def capture(self, window: WindowInfo) -> Image.Image:
        self.calls += 1
        if not self.queue:
            raise CaptureError("no frame queued")
        item = self.queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def solid(size=(100, 50), color=(255, 255, 255)) -> Image.Image:
    return Image.new("RGB", size, color)


@pytest.fixture
def make_frame():
    return solid


@pytest.fixture
def vsc_config() -> EmrConfig:
    return EmrConfig.model_validate({
        "windowWildCard": "Visual Studio Code",
        "emrKey": "VSC",
        "cropPercentages": {"top": 10, "right": 70, "left": 5, "bottom": 50},
    })


@pytest.fixture
def vsc_window() -> WindowInfo:
    return WindowInfo(title=VSC_TITLE, id=4242, bounds=WindowBounds(0, 0, 800, 600), owner="Code")


@pytest.fixture
def fake_probe(vsc_window) -> FakeProbe:
    return FakeProbe(vsc_window)


@pytest.fixture
def acquirer_factory():
    return FakeAcquirer
