"""Throughput estimate from HLS segments on disk.

Used only when a stream has no measured samples: the two newest `.ts`
segments of the stream's media folder are assumed to span
`segment_seconds` each.
"""

from pathlib import Path

from loguru import logger

from .clock import to_ms
from .stream_registry import BitrateSample


def estimate_from_segments(
    media_dir: str | Path,
    segment_seconds: float,
    now: float,
) -> BitrateSample | None:
    folder = Path(media_dir)
    if segment_seconds <= 0 or not folder.is_dir():
        return None

    try:
        segments = sorted(
            ((p.stat().st_mtime, p.stat().st_size) for p in folder.glob("*.ts") if p.is_file()),
            key=lambda item: item[0],
        )
    except OSError as e:
        logger.warning(f"Cannot read HLS segments in {folder}: {e}")
        return None

    if len(segments) < 2:
        return None

    newest = segments[-2:]
    bytes_per_second = sum(size for _, size in newest) / (len(newest) * segment_seconds)
    mbps = round(bytes_per_second * 8 / 1e6, 2)
    return BitrateSample(time=to_ms(now), bitrate=mbps, estimated=True)
