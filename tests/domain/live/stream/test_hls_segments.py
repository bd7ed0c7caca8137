"""Tests for segment-based bitrate estimation."""

import os

from app.domain.live.stream.hls_segments import estimate_from_segments


def _segment(folder, name: str, size: int, mtime: float) -> None:
    path = folder / name
    path.write_bytes(b"\0" * size)
    os.utime(path, (mtime, mtime))


class TestEstimateFromSegments:
    def test_uses_two_newest_segments(self, tmp_path, clock):
        _segment(tmp_path, "a.ts", 10_000_000, 100)
        _segment(tmp_path, "b.ts", 750_000, 200)
        _segment(tmp_path, "c.ts", 750_000, 300)

        sample = estimate_from_segments(tmp_path, 6, clock.now())

        # 1.5 MB over 12 s -> 1.0 Mbps
        assert sample is not None
        assert sample.bitrate == 1.0
        assert sample.estimated is True

    def test_needs_two_segments(self, tmp_path, clock):
        _segment(tmp_path, "a.ts", 1000, 100)
        (tmp_path / "index.m3u8").write_text("#EXTM3U\n")

        assert estimate_from_segments(tmp_path, 6, clock.now()) is None

    def test_missing_folder(self, tmp_path, clock):
        assert estimate_from_segments(tmp_path / "missing", 6, clock.now()) is None
