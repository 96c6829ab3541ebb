"""
Diagnostic script for the window probe and screenshot acquirer.
Run this to check what the watcher sees on this machine.

Expected behavior:
- Prints the focused window's title, id and bounds once per second
- With --capture, also captures it and prints the frame size and how much of
  it changed since the previous capture
- Switching windows changes the printed title immediately
"""

import argparse
import os
import sys
import time
import logging

# Add parent directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from packages.core.capture.acquirer import CaptureError, select_screenshot_acquirer
from packages.core.capture.change_detector import difference_percent
from packages.core.monitor.window_probe import select_window_probe

logging.basicConfig(
    level=logging.DEBUG,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
)

def main():
    ap = argparse.ArgumentParser(description="Print what the window probe reports.")
    ap.add_argument("--capture", action="store_true", help="Also capture the focused window")
    args = ap.parse_args()

    print("=" * 60)
    print("Window Probe Test")
    print("=" * 60)

    probe = select_window_probe()
    acquirer = select_screenshot_acquirer() if args.capture else None
    print(f"Probe: {type(probe).__name__}")
    if acquirer:
        print(f"Acquirer: {type(acquirer).__name__}")
    print("Sampling focused window (press Ctrl+C to stop)...")
    print("-" * 60)

    previous = None
    try:
        sample_count = 0
        while True:
            sample_count += 1
            window = probe.probe()

            if window is None:
                print(f"[{sample_count:4d}] no window (probe failed)")
            else:
                print(f"[{sample_count:4d}] {window.title!r} id={window.id} owner={window.owner} bounds={window.bounds}")
                if acquirer:
                    try:
                        frame = acquirer.capture(window)
                        changed = 100.0 if previous is None else difference_percent(frame, previous)
                        print(f"       frame {frame.width}x{frame.height}, changed {changed:.2f}%")
                        previous = frame
                    except CaptureError as e:
                        print(f"       capture failed: {e}")

            time.sleep(1.0)

    except KeyboardInterrupt:
        print()
        print("-" * 60)
        print("Test stopped by user")

    finally:
        if acquirer:
            acquirer.close()

    print("=" * 60)
    return 0

if __name__ == "__main__":
    sys.exit(main())
