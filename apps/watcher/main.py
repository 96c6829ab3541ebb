import argparse
import logging
import signal
import sys
from typing import List, Optional

from pydantic import ValidationError

from packages.shared.config import EmrConfig, WatcherSettings
from packages.shared.paths import ensure_app_dirs
from packages.core.logging_ import setup_logging
from packages.core.capture.acquirer import select_screenshot_acquirer
from packages.core.monitor.control import JsonLineWriter, StdinConfigListener, parse_control_message
from packages.core.monitor.emr_monitor import EmrWindowMonitor
from packages.core.monitor.window_probe import select_window_probe

log = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="emr-watcher",
        description="Watch the focused window and stream screenshots of configured EMR windows when they change.",
    )
    ap.add_argument("config", nargs="?", default=None, help='Initial config as JSON: {"config": [...]}')
    ap.add_argument("user_data_path", nargs="?", default=None, help="Directory for temporary capture files")
    ap.add_argument("--interval-ms", type=int, default=2000, help="Poll interval in milliseconds")
    ap.add_argument("--capture-timeout", type=float, default=10.0, help="Seconds before an external capture is abandoned")
    ap.add_argument("--log-level", default="INFO")
    ap.add_argument("--console-log", action="store_true", help="Also log to stderr when it is a terminal (ignored under a parent process)")
    return ap


def initial_configs(raw: Optional[str]) -> List[EmrConfig]:
    if not raw:
        return []
    return parse_control_message(raw) or []


def main(argv: Optional[List[str]] = None) -> int:
    ap = build_arg_parser()
    args = ap.parse_args(argv)
    try:
        settings = WatcherSettings(
            poll_interval_ms=args.interval_ms,
            capture_timeout_s=args.capture_timeout,
            capture_dir=args.user_data_path,
            log_level=args.log_level.upper(),
        )
    except ValidationError as e:
        ap.error(str(e))

    ensure_app_dirs()
    setup_logging(settings.log_level, console=args.console_log)

    acquirer = select_screenshot_acquirer(**settings.to_capture_config())
    monitor = EmrWindowMonitor(
        settings.to_monitor_config(),
        probe=select_window_probe(),
        acquirer=acquirer,
        emr_configs=initial_configs(args.config),
    )
    monitor.on_event(JsonLineWriter(sys.stdout, "stdout").write)
    monitor.on_error(JsonLineWriter(sys.stderr, "stderr").write)
    listener = StdinConfigListener(sys.stdin, monitor.set_emr_configs)

    def signal_handler(sig, frame):
        log.info(f"Received signal {sig}, shutting down")
        monitor.stop()

    signal.signal(signal.SIGINT, signal_handler)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, signal_handler)

    log.info(f"Watcher started (interval {settings.poll_interval_ms}ms, {len(monitor.emr_configs)} EMR config(s))")
    listener.start()
    monitor.start()

    # Short joins keep the main thread responsive to signals
    while not monitor.join(timeout=0.5):
        pass

    acquirer.close()
    log.info("Watcher stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
