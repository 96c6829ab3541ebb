"""
EMR window monitor.

Every poll tick runs one pipeline, start to finish, on the monitor thread:

  probe -> match -> capture -> crop -> compare -> (changed) emit

and ends in exactly one outcome: IDLE (nothing focused, no match, or no visual
change), ERROR (capture/crop/encode failed; reported on the error callback) or
EMITTED (an OutputEvent carrying the full, uncropped capture).

The EMR config list is swapped as a whole from another thread (stdin listener);
the tick reads a snapshot of the reference, never a half-updated list.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional, Sequence, Tuple

from packages.core.capture.acquirer import CaptureError, ScreenshotAcquirer, select_screenshot_acquirer
from packages.core.capture.change_detector import ChangeDetector
from packages.core.capture.imaging import crop_frame, encode_base64_png
from packages.shared.config import CaptureFailure, EmrConfig, OutputEvent, ReadySignal, WireModel

from .matcher import match_window
from .types import MatchedWindow, MonitorConfig, MonitorState, TickOutcome
from .window_probe import WindowProbe, select_window_probe

log = logging.getLogger(__name__)


def _now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%S", time.localtime())


class EmrWindowMonitor:
    """Background monitor that emits the focused EMR window whenever its cropped region changes."""

    def __init__(
        self,
        config: dict,
        probe: Optional[WindowProbe] = None,
        acquirer: Optional[ScreenshotAcquirer] = None,
        emr_configs: Sequence[EmrConfig] = (),
    ) -> None:
        self._cfg = self._parse_config(config)
        self._probe = probe or select_window_probe()
        self._acquirer = acquirer or select_screenshot_acquirer()
        self._emr_configs: Tuple[EmrConfig, ...] = tuple(emr_configs)
        self._detector = ChangeDetector()
        self._state = MonitorState()
        self._lock = threading.Lock()

        self._event_cb: Optional[Callable[[WireModel], None]] = None
        self._error_cb: Optional[Callable[[CaptureFailure], None]] = None

        self._thread: Optional[threading.Thread] = None
        self._stop_evt = threading.Event()

    @staticmethod
    def _parse_config(config: dict) -> MonitorConfig:
        return MonitorConfig(poll_interval_ms=config.get("poll_interval_ms", 2000))

    def on_event(self, cb: Callable[[WireModel], None]) -> None:
        self._event_cb = cb

    def on_error(self, cb: Callable[[CaptureFailure], None]) -> None:
        self._error_cb = cb

    def set_emr_configs(self, configs: Sequence[EmrConfig]) -> None:
        """Replace the whole EMR list. Last writer wins."""
        new = tuple(configs)
        with self._lock:
            self._emr_configs = new
        log.info(f"EMR config replaced ({len(new)} entr{'y' if len(new) == 1 else 'ies'})")

    @property
    def emr_configs(self) -> Tuple[EmrConfig, ...]:
        with self._lock:
            return self._emr_configs

    @property
    def change_detector(self) -> ChangeDetector:
        return self._detector

    def get_state(self) -> MonitorState:
        with self._lock:
            return MonitorState(
                status=self._state.status,
                ticks=self._state.ticks,
                events_emitted=self._state.events_emitted,
                last_outcome=self._state.last_outcome,
                last_emr_key=self._state.last_emr_key,
            )

    def start(self) -> None:
        with self._lock:
            if self._state.status == "RUNNING":
                return
            self._state.status = "RUNNING"
            previous = self._thread

        # A stopped loop may still be inside its last tick; never run two at once
        if previous is not None and previous is not threading.current_thread():
            previous.join()
        self._stop_evt.clear()
        self._thread = threading.Thread(target=self._run, name="EmrWindowMonitor", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_evt.set()
        with self._lock:
            self._state.status = "STOPPED"

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the monitor thread. Returns True once it has exited."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def _emit(self, evt: WireModel) -> None:
        if self._event_cb:
            self._event_cb(evt)

    def _emit_error(self, failure: CaptureFailure) -> None:
        if self._error_cb:
            self._error_cb(failure)

    def _report_failure(self, matched: Optional[MatchedWindow], reason: str, kind: str = "CAPTURE_FAILED") -> None:
        self._emit_error(CaptureFailure(
            type=kind,
            emr_key=matched.emr_key if matched else None,
            window_title=matched.title if matched else None,
            at=_now_iso(),
            reason=reason,
        ))

    def tick(self) -> TickOutcome:
        """Run one poll. Ticks are never concurrent: only the monitor thread (or a test) calls this."""
        outcome = self._tick()
        with self._lock:
            self._state.ticks += 1
            self._state.last_outcome = outcome
            if outcome == "EMITTED":
                self._state.events_emitted += 1
        return outcome

    def _tick(self) -> TickOutcome:
        window = self._probe.probe()
        if window is None:
            return "IDLE"

        matched = match_window(window, self.emr_configs)
        if matched is None:
            return "IDLE"

        with self._lock:
            self._state.last_emr_key = matched.emr_key

        try:
            screenshot = self._acquirer.capture(window)
            cropped = crop_frame(screenshot, matched.crop_percentages)
            if not self._detector.is_different(cropped):
                return "IDLE"
            encoded = encode_base64_png(screenshot)
        except CaptureError as e:
            log.warning(f"Capture failed for {matched.emr_key} ({window.owner or window.id}): {e}")
            self._report_failure(matched, str(e))
            return "ERROR"
        except (OSError, ValueError) as e:
            log.warning(f"Could not process capture for {matched.emr_key}: {e}")
            self._report_failure(matched, str(e), kind="PROCESSING_FAILED")
            return "ERROR"

        self._detector.accept(cropped)
        log.debug(f"Change detected in {matched.emr_key}: {screenshot.width}x{screenshot.height}")
        self._emit(OutputEvent(emr_key=matched.emr_key, window_title=matched.title, screenshot=encoded))
        return "EMITTED"

    def _run(self) -> None:
        """Main loop: readiness signal, then one serialized tick per interval."""
        self._emit(ReadySignal())
        while not self._stop_evt.is_set():
            started = time.monotonic()
            try:
                self.tick()
            except Exception as e:
                log.exception("Monitor loop error")
                self._report_failure(None, str(e), kind="MONITOR_ERROR")

            with self._lock:
                cfg = self._cfg
            # Fixed cadence from tick start; an overrunning tick delays the next one
            elapsed = time.monotonic() - started
            self._stop_evt.wait(max(0.0, cfg.poll_interval_ms / 1000.0 - elapsed))
