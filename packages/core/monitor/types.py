from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, Union

from packages.shared.config import CropPercentages

MonitorStatus = Literal["STOPPED", "RUNNING"]
TickOutcome = Literal["IDLE", "ERROR", "EMITTED"]

# HWND on Windows, CGWindowID on macOS, X11 window id on Linux
WindowId = Union[int, str]


@dataclass(frozen=True)
class WindowBounds:
    """Window rectangle in screen pixels. left/top are clamped to >= 0."""
    left: int
    top: int
    right: int
    bottom: int

    @classmethod
    def clamped(cls, left: int, top: int, right: int, bottom: int) -> "WindowBounds":
        return cls(left=max(0, left), top=max(0, top), right=right, bottom=bottom)

    @property
    def width(self) -> int:
        return max(0, self.right - self.left)

    @property
    def height(self) -> int:
        return max(0, self.bottom - self.top)


@dataclass(frozen=True)
class WindowInfo:
    title: str
    id: Optional[WindowId] = None
    bounds: Optional[WindowBounds] = None
    owner: Optional[str] = None  # process name, logging only


@dataclass(frozen=True)
class MatchedWindow:
    window: WindowInfo
    emr_key: str
    crop_percentages: CropPercentages

    @property
    def title(self) -> str:
        return self.window.title


@dataclass(frozen=True)
class MonitorConfig:
    poll_interval_ms: int


@dataclass
class MonitorState:
    status: MonitorStatus = "STOPPED"
    ticks: int = 0
    events_emitted: int = 0
    last_outcome: Optional[TickOutcome] = None
    last_emr_key: Optional[str] = None  # key of the last matched window
