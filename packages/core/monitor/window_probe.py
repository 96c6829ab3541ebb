"""
Foreground window probes.

Each probe answers one question: which window is focused right now, what is its
title, its platform id and its screen rectangle. One implementation is picked per
host OS by select_window_probe():

  Windows  user32 via ctypes (HWND, GetWindowTextW, GetWindowRect)
  macOS    Quartz CGWindowList (CGWindowID), AppleScript title fallback
  Linux    xdotool CLI (X11 window id)

probe() never raises. Any failure collapses to None, which the monitor treats as
"no window this tick".
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys
from abc import ABC, abstractmethod
from typing import Optional

import psutil

from .types import WindowBounds, WindowInfo

log = logging.getLogger(__name__)

# Queries the AXMain window of the frontmost process when Quartz has no title
# (window names are hidden without the Screen Recording permission).
OSASCRIPT_TITLE = """
global frontApp, frontAppName, windowTitle

set windowTitle to ""
tell application "System Events"
    set frontApp to first application process whose frontmost is true
    set frontAppName to name of frontApp
    tell process frontAppName
        tell (1st window whose value of attribute "AXMain" is true)
            set windowTitle to value of attribute "AXTitle"
        end tell
    end tell
end tell

return {windowTitle}
"""


def _process_name(pid: Optional[int]) -> Optional[str]:
    if not pid:
        return None
    try:
        return psutil.Process(pid).name()
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return None


class WindowProbe(ABC):
    """Interface for reading the focused window."""

    def probe(self) -> Optional[WindowInfo]:
        try:
            return self._query()
        except Exception as e:
            log.debug(f"Window probe failed: {e}")
            return None

    @abstractmethod
    def _query(self) -> Optional[WindowInfo]:
        """Read the foreground window. May raise; probe() absorbs it."""
        ...


class Win32WindowProbe(WindowProbe):
    TITLE_BUFFER_CHARS = 1000

    def __init__(self) -> None:
        import ctypes
        from ctypes import wintypes

        self._ctypes = ctypes
        self._wintypes = wintypes
        self._user32 = ctypes.WinDLL("user32", use_last_error=True)
        self._user32.GetForegroundWindow.restype = wintypes.HWND
        self._user32.GetWindowTextW.argtypes = [wintypes.HWND, wintypes.LPWSTR, ctypes.c_int]
        self._user32.GetWindowTextW.restype = ctypes.c_int
        self._user32.GetWindowRect.argtypes = [wintypes.HWND, ctypes.POINTER(wintypes.RECT)]
        self._user32.GetWindowRect.restype = wintypes.BOOL
        self._user32.GetWindowThreadProcessId.argtypes = [wintypes.HWND, ctypes.POINTER(wintypes.DWORD)]
        self._user32.GetWindowThreadProcessId.restype = wintypes.DWORD

    def _query(self) -> Optional[WindowInfo]:
        ctypes, wintypes = self._ctypes, self._wintypes

        hwnd = self._user32.GetForegroundWindow()
        if not hwnd:
            return None

        title_buf = ctypes.create_unicode_buffer(self.TITLE_BUFFER_CHARS)
        self._user32.GetWindowTextW(hwnd, title_buf, self.TITLE_BUFFER_CHARS)

        bounds: Optional[WindowBounds] = None
        rect = wintypes.RECT()
        if self._user32.GetWindowRect(hwnd, ctypes.byref(rect)):
            bounds = WindowBounds.clamped(rect.left, rect.top, rect.right, rect.bottom)
        else:
            log.debug(f"GetWindowRect failed (error {ctypes.get_last_error()})")

        pid = wintypes.DWORD()
        self._user32.GetWindowThreadProcessId(hwnd, ctypes.byref(pid))

        return WindowInfo(
            title=title_buf.value.replace("\0", ""),
            id=int(hwnd),
            bounds=bounds,
            owner=_process_name(pid.value),
        )


class QuartzWindowProbe(WindowProbe):
    def __init__(self, osascript_timeout_s: float = 2.0) -> None:
        import Quartz

        self._quartz = Quartz
        self._osascript_timeout_s = osascript_timeout_s

    def _query(self) -> Optional[WindowInfo]:
        q = self._quartz
        windows = q.CGWindowListCopyWindowInfo(
            q.kCGWindowListOptionOnScreenOnly | q.kCGWindowListExcludeDesktopElements,
            q.kCGNullWindowID,
        )
        # Front-to-back order; the first normal-layer window has focus
        front = next((w for w in windows or [] if w.get("kCGWindowLayer", -1) == 0), None)
        if front is None:
            return None

        title = str(front.get("kCGWindowName") or "")
        if not title:
            title = self._title_from_osascript()

        bounds: Optional[WindowBounds] = None
        b = front.get("kCGWindowBounds")
        if b:
            x, y = int(b["X"]), int(b["Y"])
            bounds = WindowBounds.clamped(x, y, x + int(b["Width"]), y + int(b["Height"]))

        return WindowInfo(
            title=title,
            id=int(front["kCGWindowNumber"]),
            bounds=bounds,
            owner=front.get("kCGWindowOwnerName") or _process_name(front.get("kCGWindowOwnerPID")),
        )

    def _title_from_osascript(self) -> str:
        try:
            result = subprocess.run(
                ["osascript", "-e", OSASCRIPT_TITLE],
                capture_output=True,
                text=True,
                timeout=self._osascript_timeout_s,
            )
        except (subprocess.TimeoutExpired, OSError) as e:
            log.debug(f"osascript title lookup failed: {e}")
            return ""
        if result.returncode != 0:
            log.debug(f"osascript returned non-zero exit code: {result.returncode}")
            return ""
        return result.stdout.strip()


class XdotoolWindowProbe(WindowProbe):
    def __init__(self, timeout_s: float = 1.0) -> None:
        self._xdotool = shutil.which("xdotool") or "xdotool"
        self._timeout_s = timeout_s

    def _run(self, *args: str) -> str:
        result = subprocess.run(
            [self._xdotool, *args],
            capture_output=True,
            text=True,
            timeout=self._timeout_s,
        )
        if result.returncode != 0:
            raise RuntimeError(f"xdotool {args[0]} exited with {result.returncode}: {result.stderr.strip()[:200]}")
        return result.stdout.strip()

    def _query(self) -> Optional[WindowInfo]:
        wid = self._run("getactivewindow")
        if not wid:
            return None

        title = self._run("getwindowname", wid)

        bounds: Optional[WindowBounds] = None
        try:
            geometry = self._parse_shell_vars(self._run("getwindowgeometry", "--shell", wid))
            x, y = int(geometry["X"]), int(geometry["Y"])
            bounds = WindowBounds.clamped(x, y, x + int(geometry["WIDTH"]), y + int(geometry["HEIGHT"]))
        except (RuntimeError, KeyError, ValueError) as e:
            log.debug(f"xdotool geometry unavailable for {wid}: {e}")

        owner: Optional[str] = None
        try:
            owner = _process_name(int(self._run("getwindowpid", wid)))
        except (RuntimeError, ValueError):
            pass  # not every X client sets _NET_WM_PID

        return WindowInfo(title=title, id=int(wid), bounds=bounds, owner=owner)

    @staticmethod
    def _parse_shell_vars(output: str) -> dict[str, str]:
        out: dict[str, str] = {}
        for line in output.splitlines():
            key, sep, value = line.partition("=")
            if sep:
                out[key.strip()] = value.strip()
        return out


def select_window_probe() -> WindowProbe:
    if sys.platform == "win32":
        return Win32WindowProbe()
    if sys.platform == "darwin":
        return QuartzWindowProbe()
    return XdotoolWindowProbe()
