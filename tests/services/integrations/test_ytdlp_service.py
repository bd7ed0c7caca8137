"""Tests for upstream URL resolution."""

from unittest.mock import AsyncMock, patch

import pytest

from app.services.integrations.command_runner import CommandResult
from app.services.integrations.ytdlp_service import YtDlpService

RUN_COMMAND = "app.services.integrations.ytdlp_service.run_command"
PAGE = "https://www.youtube.com/watch?v=abc"


@pytest.fixture
def service() -> YtDlpService:
    return YtDlpService(ytdlp_path="yt-dlp", timeout=5)


class TestYtDlpService:
    @pytest.mark.parametrize("url", ["rtmp://a/live/x", "rtsp://cam/s", "udp://239.0.0.1:1234"])
    async def test_non_http_passthrough(self, service, url):
        with patch(RUN_COMMAND, AsyncMock()) as run:
            assert await service.resolve(url) == url

        run.assert_not_awaited()

    async def test_resolves_first_line(self, service):
        result = CommandResult(returncode=0, stdout="https://cdn/x.m3u8\nhttps://cdn/audio\n", stderr="")
        with patch(RUN_COMMAND, AsyncMock(return_value=result)) as run:
            assert await service.resolve(PAGE) == "https://cdn/x.m3u8"

        args = run.await_args.args
        assert args[0] == "yt-dlp"
        assert ("--get-url" in args) and ("best" in args)
        assert args[-1] == PAGE

    async def test_failure_falls_back(self, service):
        result = CommandResult(returncode=1, stdout="", stderr="ERROR: unsupported URL")
        with patch(RUN_COMMAND, AsyncMock(return_value=result)):
            assert await service.resolve(PAGE) == PAGE

    async def test_timeout_falls_back(self, service):
        result = CommandResult(returncode=-9, stdout="", stderr="", timed_out=True)
        with patch(RUN_COMMAND, AsyncMock(return_value=result)):
            assert await service.resolve(PAGE) == PAGE

    async def test_missing_binary_falls_back(self, service):
        with patch(RUN_COMMAND, AsyncMock(side_effect=FileNotFoundError("yt-dlp"))):
            assert await service.resolve(PAGE) == PAGE

    async def test_empty_output_falls_back(self, service):
        result = CommandResult(returncode=0, stdout="  \n", stderr="")
        with patch(RUN_COMMAND, AsyncMock(return_value=result)):
            assert await service.resolve(PAGE) == PAGE
