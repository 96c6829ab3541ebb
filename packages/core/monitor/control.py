"""
Stdio control protocol with the parent process.

  stdin   JSON control messages, {"config": [EmrConfig, ...]}
  stdout  newline-delimited JSON events (readiness signal, OutputEvent)
  stderr  newline-delimited JSON CaptureFailure records

A control message ends at a newline or as soon as its top-level object closes,
so a parent that writes bare JSON chunks without a trailing newline is served
as well as one that writes lines. stdin is read as bytes and decoded leniently;
undecodable bytes, malformed JSON and schema violations are logged and dropped
and the previous config stays active.
"""

from __future__ import annotations

import codecs
import logging
import threading
from typing import Callable, List, Optional

from pydantic import ValidationError

from packages.shared.config import ControlMessage, EmrConfig, WireModel

log = logging.getLogger(__name__)

READ_CHUNK_BYTES = 65536


def parse_control_message(raw: str) -> Optional[List[EmrConfig]]:
    """Config list from one control message, or None when it is not a valid message."""
    try:
        return list(ControlMessage.model_validate_json(raw).config)
    except ValidationError as e:
        log.warning(f"Ignoring malformed control message ({e.error_count()} error(s)): {raw[:200]!r}")
        return None


class MessageFramer:
    """
    Splits a character stream into candidate control messages.

    A message is a top-level JSON object (braces inside strings do not count),
    or any stray text up to the next newline or object. Messages cannot span a
    newline; an object still open at a newline is cut there and reported as-is
    so the parser rejects it.
    """

    MAX_PENDING_CHARS = 1_000_000

    def __init__(self) -> None:
        self._buf: List[str] = []
        self._depth = 0
        self._in_string = False
        self._escape = False

    def _take(self, out: List[str]) -> None:
        text = "".join(self._buf).strip()
        if text:
            out.append(text)
        self._buf = []
        self._depth = 0
        self._in_string = False
        self._escape = False

    def feed(self, text: str) -> List[str]:
        out: List[str] = []
        for ch in text:
            if ch in "\r\n":
                self._take(out)
                continue

            if self._depth == 0:
                if ch == "{":
                    self._take(out)  # stray text before the object
                    self._depth = 1
                self._buf.append(ch)
            else:
                self._buf.append(ch)
                if self._in_string:
                    if self._escape:
                        self._escape = False
                    elif ch == "\\":
                        self._escape = True
                    elif ch == '"':
                        self._in_string = False
                elif ch == '"':
                    self._in_string = True
                elif ch == "{":
                    self._depth += 1
                elif ch == "}":
                    self._depth -= 1
                    if self._depth == 0:
                        self._take(out)

            if len(self._buf) > self.MAX_PENDING_CHARS:
                log.warning(f"Dropping oversized control input ({len(self._buf)} chars without a message boundary)")
                self._buf = []
                self._depth = 0
                self._in_string = False
                self._escape = False
        return out

    def close(self) -> List[str]:
        """Flush whatever is pending (end of input)."""
        out: List[str] = []
        self._take(out)
        return out


class JsonLineWriter:
    """Writes one JSON object per line to a stream. Thread-safe, flushes per message."""

    def __init__(self, stream, name: str) -> None:
        self._stream = stream
        self._name = name
        self._lock = threading.Lock()

    def write(self, msg: WireModel) -> bool:
        line = msg.to_json_line()
        with self._lock:
            try:
                self._stream.write(line + "\n")
                self._stream.flush()
            except (OSError, ValueError) as e:
                # Parent closed the pipe (or the stream was closed under us)
                log.error(f"Could not write to {self._name}: {e}")
                return False
        return True


class StdinConfigListener:
    """
    Reads control messages on a daemon thread and hands each valid config list to on_config.

    Accepts a text stream with a binary buffer (sys.stdin), a binary stream, or a
    plain text stream. Only end of input or an OS-level read error stops it.
    """

    def __init__(self, stream, on_config: Callable[[List[EmrConfig]], None]) -> None:
        self._source = getattr(stream, "buffer", stream)
        self._on_config = on_config
        self._framer = MessageFramer()
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._run, name="StdinConfigListener", daemon=True)
        self._thread.start()

    def join(self, timeout: Optional[float] = None) -> bool:
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def handle_line(self, line: str) -> bool:
        """Apply one complete message. Returns True if it replaced the config."""
        line = line.strip()
        if not line:
            return False
        configs = parse_control_message(line)
        if configs is None:
            return False
        self._on_config(configs)
        return True

    def feed(self, data) -> int:
        """Apply every message completed by data (bytes or str). Returns how many replaced the config."""
        text = self._decoder.decode(data) if isinstance(data, (bytes, bytearray)) else data
        return sum(self.handle_line(msg) for msg in self._framer.feed(text))

    def _read_chunk(self):
        read1 = getattr(self._source, "read1", None)
        if read1 is not None:
            # returns as soon as any bytes are available, so unterminated chunks are seen
            return read1(READ_CHUNK_BYTES)
        return self._source.read(READ_CHUNK_BYTES)

    def _run(self) -> None:
        while True:
            try:
                chunk = self._read_chunk()
            except (OSError, ValueError) as e:
                log.error(f"Config listener stopped reading stdin: {e}")
                return
            if not chunk:
                break
            self.feed(chunk)

        tail = self._decoder.decode(b"", final=True)
        for msg in self._framer.feed(tail) + self._framer.close():
            self.handle_line(msg)
        log.info("stdin closed; no further config updates")
