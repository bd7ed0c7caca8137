"""Per-stream telemetry log files.

Layout under the logs directory, one folder per stream (display name when
known, else id) and one file per kind and day:

    <logs>/<name>/Bitrate-<name>-<YYYY-MM-DD>.log
    <logs>/<name>/Issue-<name>-<YYYY-MM-DD>.log

Write failures are logged and swallowed; losing a telemetry line must never
affect the supervised stream.
"""

import re
from datetime import datetime
from pathlib import Path

from loguru import logger

_UNSAFE_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*]')


def sanitize_filename(name: str) -> str:
    return _UNSAFE_FILENAME_CHARS.sub("_", name)


def format_server_time(ts: float) -> str:
    """Server-local time with UTC offset: `YYYY-MM-DD HH:MM:SS ±HH:MM`."""
    local = datetime.fromtimestamp(ts).astimezone()
    offset = local.strftime("%z")
    return f"{local:%Y-%m-%d %H:%M:%S} {offset[:3]}:{offset[3:]}"


def format_duration(seconds: float) -> str:
    """`H:MM:SS` for an hour or more, `M:SS` below, `0s` for nothing."""
    if not seconds or seconds <= 0:
        return "0s"
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    mins, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}:{mins:02d}:{secs:02d}"
    return f"{mins}:{secs:02d}"


class StreamLogWriter:
    def __init__(self, logs_dir: str | Path):
        self.logs_dir = Path(logs_dir)

    def stream_dir(self, name: str) -> Path:
        return self.logs_dir / sanitize_filename(name)

    def log_path(self, name: str, kind: str, ts: float) -> Path:
        safe_name = sanitize_filename(name)
        day = datetime.fromtimestamp(ts).strftime("%Y-%m-%d")
        return self.stream_dir(name) / f"{kind}-{safe_name}-{day}.log"

    def write_bitrate(self, name: str, ts: float, bitrate: float) -> None:
        self._append(self.log_path(name, "Bitrate", ts), f"{format_server_time(ts)} Bitrate: {bitrate} Mbps")

    def write_signal_loss_start(self, name: str, ts: float) -> None:
        self._append(self.log_path(name, "Issue", ts), f"Signal Loss Start: {format_server_time(ts)}")

    def write_signal_loss_end(self, name: str, start_ts: float, end_ts: float) -> None:
        duration = format_duration(end_ts - start_ts)
        self._append(
            self.log_path(name, "Issue", end_ts),
            f"Signal Loss End: {format_server_time(end_ts)} (Duration: {duration})",
        )

    def _append(self, path: Path, line: str) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            logger.warning(f"Failed to write stream log {path}: {e}")
