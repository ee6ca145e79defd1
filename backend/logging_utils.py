"""
Console logging helpers for the locator service.

Telemetry goes to stdout as tagged lines (``--- [TAG] message``). When the
server is started through ``api_server.main`` the console is also mirrored
into a transcript, one timestamped line per console line, so a whole
generation or validation session can be read back later.
"""

import atexit
import os
import sys
import threading
import time
from typing import Dict, Optional, TextIO, Tuple

DEFAULT_LOG_DIR = os.getenv(
    "LOCATOR_LOG_DIR",
    os.path.join(os.path.dirname(os.path.abspath(__file__)), "logs"),
)
LOG_CAPTURE_ENABLED = os.getenv("LOCATOR_LOG_CAPTURE", "true").strip().lower() not in ("0", "false", "no")


class TranscriptWriter:
    """Timestamped transcript shared by the mirrored stdout and stderr."""

    def __init__(self, path: str):
        self.path = path
        self._handle = open(path, "w", encoding="utf-8")
        self._lock = threading.Lock()
        # Partial line per stream, written once its newline arrives.
        self._pending: Dict[str, str] = {}

    def _emit(self, stream_name: str, line: str) -> None:
        self._handle.write(f"{time.strftime('%Y-%m-%d %H:%M:%S')} {stream_name} {line}\n")

    def write(self, stream_name: str, data: str) -> None:
        with self._lock:
            if self._handle.closed:
                return
            *lines, rest = (self._pending.get(stream_name, "") + data).split("\n")
            self._pending[stream_name] = rest
            for line in lines:
                self._emit(stream_name, line)
            if lines:
                self._handle.flush()

    def close(self) -> None:
        with self._lock:
            if self._handle.closed:
                return
            for stream_name, rest in self._pending.items():
                if rest:
                    self._emit(stream_name, rest)
            self._pending.clear()
            self._handle.close()


class _MirroredStream:
    def __init__(self, original: TextIO, stream_name: str, transcript: TranscriptWriter):
        self._original = original
        self._stream_name = stream_name
        self._transcript = transcript

    def write(self, data: str) -> int:
        written = self._original.write(data)
        self._transcript.write(self._stream_name, data)
        return written

    def flush(self) -> None:
        self._original.flush()

    def __getattr__(self, name):
        return getattr(self._original, name)


_TRANSCRIPT: Optional[TranscriptWriter] = None
_ORIGINAL_STREAMS: Optional[Tuple[TextIO, TextIO]] = None


def log_line(tag: str, message: str) -> None:
    """Print a tagged telemetry line, degrading to ASCII if the console can't encode it."""
    line = f"--- [{tag}] {message}"
    try:
        print(line)
    except UnicodeEncodeError:
        print(line.encode("ascii", "replace").decode("ascii"))


def setup_log_capture(
    log_dir: Optional[str] = None,
    filename_prefix: str = "locator_service"
) -> Optional[str]:
    """
    Mirror stdout/stderr into a timestamped transcript until ``close_log_capture``.

    Args:
        log_dir: Directory to store transcripts (defaults to ``LOCATOR_LOG_DIR``).
        filename_prefix: Prefix for the generated filename.

    Returns:
        The absolute path to the transcript, or None if it could not be opened.
        Calling it again while capture is active returns the current path.
    """
    global _TRANSCRIPT, _ORIGINAL_STREAMS

    if _TRANSCRIPT is not None:
        return _TRANSCRIPT.path

    base_dir = log_dir or DEFAULT_LOG_DIR
    timestamp = time.strftime("%Y%m%d-%H%M%S")
    log_path = os.path.abspath(os.path.join(base_dir, f"{filename_prefix}_{timestamp}.log"))
    try:
        os.makedirs(base_dir, exist_ok=True)
        transcript = TranscriptWriter(log_path)
    except OSError:
        return None

    _TRANSCRIPT = transcript
    _ORIGINAL_STREAMS = (sys.stdout, sys.stderr)
    sys.stdout = _MirroredStream(sys.stdout, "OUT", transcript)
    sys.stderr = _MirroredStream(sys.stderr, "ERR", transcript)

    atexit.register(close_log_capture)
    return log_path


def close_log_capture() -> None:
    """Restore the console streams and close the transcript. Safe to call twice."""
    global _TRANSCRIPT, _ORIGINAL_STREAMS
    if _ORIGINAL_STREAMS is not None:
        sys.stdout, sys.stderr = _ORIGINAL_STREAMS
    if _TRANSCRIPT is not None:
        _TRANSCRIPT.close()
    _TRANSCRIPT = None
    _ORIGINAL_STREAMS = None
