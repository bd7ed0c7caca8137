"""Upstream URL resolution through yt-dlp.

Page URLs of hosted video (YouTube and the like) are not playable by ffmpeg;
yt-dlp turns them into a direct media URL. Non-HTTP sources (rtsp, udp,
rtmp) are passed through untouched, and any failure falls back to the
original URL so ffmpeg still gets a chance.

Usage:
    resolver = YtDlpService(ytdlp_path="yt-dlp", timeout=20)
    direct_url = await resolver.resolve("https://www.youtube.com/watch?v=...")
"""

from loguru import logger

from .command_runner import run_command


class YtDlpService:
    def __init__(self, ytdlp_path: str = "yt-dlp", timeout: float = 20.0) -> None:
        self.ytdlp_path = ytdlp_path
        self.timeout = timeout

    @staticmethod
    def needs_resolution(url: str) -> bool:
        return url.startswith(("http://", "https://"))

    async def resolve(self, url: str) -> str:
        if not self.needs_resolution(url):
            return url

        try:
            result = await run_command(
                self.ytdlp_path, "--get-url", "-f", "best", "--no-warnings", url, timeout=self.timeout
            )
        except OSError as e:
            logger.warning(f"yt-dlp unavailable, using source URL as is: {e}")
            return url

        if not result.ok:
            logger.warning(
                f"yt-dlp could not resolve {url} (code={result.returncode}, "
                f"timed_out={result.timed_out}): {result.stderr.strip()[:500]}"
            )
            return url

        lines = result.stdout.strip().splitlines()
        resolved = lines[0].strip() if lines else ""
        if not resolved:
            return url

        logger.debug(f"Resolved {url} -> {resolved}")
        return resolved


__all__ = ["YtDlpService"]
