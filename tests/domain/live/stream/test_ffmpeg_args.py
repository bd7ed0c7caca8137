"""Tests for ffmpeg argument construction."""

import pytest

from app.domain.live.stream.ffmpeg_args import build_ffmpeg_args, input_args, publish_url_for
from app.schemas import Resolution

PUBLISH = "rtmp://127.0.0.1/live/abc"


def _value_after(args: list[str], flag: str) -> str:
    return args[args.index(flag) + 1]


class TestInputArgs:
    def test_rtsp_uses_tcp(self):
        args = input_args("rtsp://cam/stream")
        assert _value_after(args, "-rtsp_transport") == "tcp"

    def test_udp_gets_reliability_flags(self):
        args = input_args("udp://239.0.0.1:1234")
        assert _value_after(args, "-probesize") == "5M"
        assert _value_after(args, "-analyzeduration") == "5000000"
        assert _value_after(args, "-fflags") == "+genpts+igndts+discardcorrupt"

    @pytest.mark.parametrize("url", ["rtmp://a/live/x", "http://example.com/x.m3u8"])
    def test_other_protocols_only_realtime(self, url):
        assert input_args(url) == ["-re"]

    def test_always_realtime(self):
        assert input_args("rtsp://cam/stream")[-1] == "-re"


class TestBuildFfmpegArgs:
    def test_720p_profile(self):
        args = build_ffmpeg_args("rtmp://src/live/x", Resolution.P720, PUBLISH)

        assert _value_after(args, "-vf") == "scale=-2:720"
        assert _value_after(args, "-b:v") == "2500k"
        assert _value_after(args, "-maxrate") == "3000k"
        assert _value_after(args, "-bufsize") == "6000k"
        assert _value_after(args, "-b:a") == "128k"

    def test_480p_profile(self):
        args = build_ffmpeg_args("rtmp://src/live/x", "480p", PUBLISH)

        assert _value_after(args, "-vf") == "scale=-2:480"
        assert _value_after(args, "-b:v") == "1200k"
        assert _value_after(args, "-maxrate") == "1500k"
        assert _value_after(args, "-bufsize") == "2000k"
        assert _value_after(args, "-b:a") == "96k"

    def test_unknown_resolution_falls_back_to_480p(self):
        args = build_ffmpeg_args("rtmp://src/live/x", "1080p", PUBLISH)
        assert _value_after(args, "-vf") == "scale=-2:480"

    def test_output_shape(self):
        args = build_ffmpeg_args("rtsp://cam/stream", Resolution.P480, PUBLISH)

        assert args.index("-rtsp_transport") < args.index("-i")
        assert _value_after(args, "-i") == "rtsp://cam/stream"
        assert _value_after(args, "-c:v") == "libx264"
        assert _value_after(args, "-preset") == "ultrafast"
        assert _value_after(args, "-g") == "60"
        assert _value_after(args, "-pix_fmt") == "yuv420p"
        assert _value_after(args, "-c:a") == "aac"
        assert _value_after(args, "-ar") == "44100"
        assert _value_after(args, "-f") == "flv"
        assert _value_after(args, "-progress") == "pipe:1"
        assert "-nostats" in args
        assert args[-1] == PUBLISH


def test_publish_url_for():
    assert publish_url_for("rtmp://127.0.0.1/live/", "abc") == "rtmp://127.0.0.1/live/abc"
