"""ffmpeg command line construction.

Two independent axes shape the arguments: the input protocol (reliability
flags) and the resolution profile (scale and bitrate ladder). Output is always
FLV pushed to the local media server, with a machine-readable progress stream
on stdout and diagnostics on stderr.
"""

from dataclasses import dataclass

from app.schemas import Resolution


@dataclass(frozen=True, slots=True)
class ResolutionProfile:
    scale: str
    video_bitrate: str
    maxrate: str
    bufsize: str
    audio_bitrate: str


RESOLUTION_PROFILES: dict[Resolution, ResolutionProfile] = {
    Resolution.P720: ResolutionProfile(
        scale="scale=-2:720",
        video_bitrate="2500k",
        maxrate="3000k",
        bufsize="6000k",
        audio_bitrate="128k",
    ),
    Resolution.P480: ResolutionProfile(
        scale="scale=-2:480",
        video_bitrate="1200k",
        maxrate="1500k",
        bufsize="2000k",
        audio_bitrate="96k",
    ),
}

GOP_SIZE = 60
AUDIO_SAMPLE_RATE = 44100


def input_args(source_url: str) -> list[str]:
    """Protocol-specific input options, placed before `-i`."""
    args: list[str] = []

    if source_url.startswith("rtsp://"):
        args += ["-rtsp_transport", "tcp"]

    if source_url.startswith("udp://"):
        # UDP sources drop and reorder packets; probe longer and tolerate damage.
        args += [
            "-probesize", "5M",
            "-analyzeduration", "5000000",
            "-fflags", "+genpts+igndts+discardcorrupt",
        ]

    args.append("-re")
    return args


def output_args(resolution: Resolution | str | None, publish_url: str) -> list[str]:
    profile = RESOLUTION_PROFILES[Resolution.parse(resolution)]
    return [
        "-c:v", "libx264",
        "-preset", "ultrafast",
        "-vf", profile.scale,
        "-b:v", profile.video_bitrate,
        "-maxrate", profile.maxrate,
        "-bufsize", profile.bufsize,
        "-g", str(GOP_SIZE),
        "-pix_fmt", "yuv420p",
        "-c:a", "aac",
        "-b:a", profile.audio_bitrate,
        "-ar", str(AUDIO_SAMPLE_RATE),
        "-f", "flv",
        "-progress", "pipe:1",
        "-nostats",
        publish_url,
    ]


def build_ffmpeg_args(source_url: str, resolution: Resolution | str | None, publish_url: str) -> list[str]:
    """Full argument list (without the ffmpeg executable itself)."""
    return [*input_args(source_url), "-i", source_url, *output_args(resolution, publish_url)]


def publish_url_for(publish_base: str, stream_id: str) -> str:
    return f"{publish_base.rstrip('/')}/{stream_id}"
