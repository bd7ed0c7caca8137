"""Common enums used across stream schemas."""

from enum import Enum


class Resolution(str, Enum):
    """Transcoding quality profiles.

    Only two fixed profiles are supported. Anything else falls back to
    P480 so a bad client value never prevents a stream from starting.
    """

    P480 = "480p"
    P720 = "720p"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: "str | Resolution | None") -> "Resolution":
        if isinstance(value, Resolution):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.P480


class StreamEventType(str, Enum):
    """Event types published on the push channel.

    - STARTING / STARTED: transcoder spawn requested / spawned
    - STOPPED: transcoder process exited (any reason)
    - ERROR: transcoder could not be spawned
    - BITRATE: new throughput sample, or 0 when the stream is judged down
    - BITRATE_HISTORY: recent samples, replayed to a newly connected observer
    - VIEWERS: playback session count changed
    - CLEANED: session torn down (stop or idle timeout)
    - FFMPEG_LOG: diagnostic text relayed verbatim from the transcoder
    """

    STARTING = "starting"
    STARTED = "started"
    STOPPED = "stopped"
    ERROR = "error"
    BITRATE = "bitrate"
    BITRATE_HISTORY = "bitrate-history"
    VIEWERS = "viewers"
    CLEANED = "cleaned"
    FFMPEG_LOG = "ffmpeg-log"

    def __str__(self) -> str:
        return self.value


__all__ = ["Resolution", "StreamEventType"]
