import socket

from pydantic import BaseModel

from app.shared.config import config


def detect_host_ip() -> str:
    """Best-effort LAN address of this machine, used to build absolute HLS URLs."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        # No packets are sent for a UDP connect; it only selects the outbound interface.
        sock.connect(("10.255.255.255", 1))
        address = sock.getsockname()[0]
    except OSError:
        return "127.0.0.1"
    finally:
        sock.close()

    if address.startswith("169.254."):
        return "127.0.0.1"
    return address


def _str(key: str, default: str) -> str:
    return (config.get(key) or "").strip() or default


def _int(key: str, default: int) -> int:
    return int((config.get(key) or "").strip() or default)


def _float(key: str, default: float) -> float:
    return float((config.get(key) or "").strip() or default)


_HOST_IP = _str("HOST_IP", "") or detect_host_ip()
_HLS_HTTP_PORT = _int("HLS_HTTP_PORT", 8000)


class AppEnvironConfig(BaseModel):
    DEBUG: bool = _str("DEBUG", "false").lower() == "true"

    # API server
    API_HOST: str = _str("API_HOST", "0.0.0.0")
    API_PORT: int = _int("API_PORT", 3001)
    API_CORS_ORIGINS: list[str] = [x.strip() for x in _str("API_CORS_ORIGINS", "*").split(",") if x.strip()]

    # External binaries
    FFMPEG_PATH: str = _str("FFMPEG_PATH", "ffmpeg")
    FFPROBE_PATH: str = _str("FFPROBE_PATH", "ffprobe")
    YTDLP_PATH: str = _str("YTDLP_PATH", "yt-dlp")

    # Media server: transcoders publish here, viewers pull HLS from HLS_BASE_URL
    RTMP_PUBLISH_BASE: str = _str("RTMP_PUBLISH_BASE", "rtmp://127.0.0.1/live")
    HOST_IP: str = _HOST_IP
    HLS_HTTP_PORT: int = _HLS_HTTP_PORT
    HLS_BASE_URL: str = _str("HLS_BASE_URL", f"http://{_HOST_IP}:{_HLS_HTTP_PORT}")
    HLS_SEGMENT_SECONDS: float = _float("HLS_SEGMENT_SECONDS", 6)

    # Filesystem layout
    MEDIA_ROOT: str = _str("MEDIA_ROOT", "./media")
    LOGS_DIR: str = _str("LOGS_DIR", "./logs")
    HISTORY_FILE: str = _str("HISTORY_FILE", "./bitrate_history.json")

    # Supervisor timings
    API_IDLE_TIMEOUT_MS: int = _int("API_IDLE_TIMEOUT_MS", 2 * 60 * 1000)
    STALE_THRESHOLD_SECONDS: float = _float("STALE_THRESHOLD_SECONDS", 15)
    STALE_SWEEP_INTERVAL_SECONDS: float = _float("STALE_SWEEP_INTERVAL_SECONDS", 5)
    IDLE_SWEEP_INTERVAL_SECONDS: float = _float("IDLE_SWEEP_INTERVAL_SECONDS", 30)
    HISTORY_SAVE_INTERVAL_SECONDS: float = _float("HISTORY_SAVE_INTERVAL_SECONDS", 5 * 60)
    CLEANUP_BLOCK_SECONDS: float = _float("CLEANUP_BLOCK_SECONDS", 5 * 60)
    STOP_TIMEOUT_SECONDS: float = _float("STOP_TIMEOUT_SECONDS", 4)
    KILL_CONFIRM_SECONDS: float = _float("KILL_CONFIRM_SECONDS", 2)
    PROBE_TIMEOUT_SECONDS: float = _float("PROBE_TIMEOUT_SECONDS", 9)
    RESOLVE_TIMEOUT_SECONDS: float = _float("RESOLVE_TIMEOUT_SECONDS", 20)

    # Push channel
    SNAPSHOT_HISTORY_SAMPLES: int = _int("SNAPSHOT_HISTORY_SAMPLES", 300)
    SUBSCRIBER_QUEUE_SIZE: int = _int("SUBSCRIBER_QUEUE_SIZE", 1000)

    @property
    def idle_timeout_seconds(self) -> float:
        return self.API_IDLE_TIMEOUT_MS / 1000


_app_environ_config = AppEnvironConfig()


def get_app_environ_config() -> AppEnvironConfig:
    return _app_environ_config
