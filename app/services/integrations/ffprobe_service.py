"""Source diagnostics through ffprobe.

Usage:
    prober = FfprobeService(ffprobe_path="ffprobe", timeout=9)
    info = await prober.probe("rtsp://camera.local/stream")
    info["streams"], info["format"]
"""

from typing import Any

import orjson
from loguru import logger

from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from .command_runner import run_command

PROBE_ARGS = ("-v", "error", "-show_format", "-show_streams", "-print_format", "json")


class FfprobeService:
    def __init__(self, ffprobe_path: str = "ffprobe", timeout: float = 9.0) -> None:
        self.ffprobe_path = ffprobe_path
        self.timeout = timeout

    def _failure(self, message: str) -> AppError:
        return AppError(AppErrorCode.E_PROBE_FAILED, message, HttpStatusCode.BAD_GATEWAY)

    async def probe(self, source_url: str) -> dict[str, Any]:
        """Return ffprobe's format and stream description of `source_url`.

        Raises:
            AppError: E_PROBE_FAILED when ffprobe cannot run, times out, or
                produces no parsable output.
        """
        try:
            result = await run_command(self.ffprobe_path, *PROBE_ARGS, source_url, timeout=self.timeout)
        except OSError as e:
            logger.error(f"ffprobe could not be started: {e}")
            raise self._failure(f"ffprobe could not be started: {e}") from e

        if result.timed_out:
            raise self._failure(f"ffprobe timed out after {self.timeout}s")

        if not result.stdout.strip():
            raise self._failure(
                f"ffprobe failed (code={result.returncode}): {result.stderr.strip()[:500]}"
            )

        try:
            data = orjson.loads(result.stdout)
        except orjson.JSONDecodeError as e:
            raise self._failure("ffprobe returned non-json output") from e

        if not isinstance(data, dict):
            raise self._failure("ffprobe returned unexpected output")
        return data


__all__ = ["FfprobeService"]
