"""Tests for stream identity derivation."""

import hashlib

from app.domain.live.stream.stream_identity import resolve_stream_id, stream_id_from_path


class TestResolveStreamId:
    def test_md5_of_exact_url(self):
        url = "rtmp://example.com/live/cam1"
        assert resolve_stream_id(url) == hashlib.md5(url.encode()).hexdigest()

    def test_same_url_same_id(self):
        assert resolve_stream_id("udp://239.0.0.1:1234") == resolve_stream_id("udp://239.0.0.1:1234")

    def test_no_normalization(self):
        """URLs differing only in case or whitespace are different streams."""
        base = resolve_stream_id("rtsp://Cam.local/stream")
        assert resolve_stream_id("rtsp://cam.local/stream") != base
        assert resolve_stream_id(" rtsp://Cam.local/stream") != base

    def test_id_is_32_hex_chars(self):
        stream_id = resolve_stream_id("http://example.com/watch?v=abc")
        assert len(stream_id) == 32
        int(stream_id, 16)


class TestStreamIdFromPath:
    def test_last_segment(self):
        assert stream_id_from_path("/live/abc123") == "abc123"

    def test_trailing_slash(self):
        assert stream_id_from_path("/live/abc123/") == "abc123"

    def test_bare_id(self):
        assert stream_id_from_path("abc123") == "abc123"
