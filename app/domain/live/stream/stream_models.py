"""Stream domain models."""

from pydantic import BaseModel, Field

from app.schemas import Resolution

from .stream_registry import BitrateSample


class BitrateSampleModel(BaseModel):
    """One throughput sample; `time` is epoch milliseconds, `bitrate` Mbps."""

    time: int
    bitrate: float
    estimated: bool = False

    @classmethod
    def from_sample(cls, sample: BitrateSample) -> "BitrateSampleModel":
        return cls(time=sample.time, bitrate=sample.bitrate, estimated=sample.estimated)


class StreamUrlsResponse(BaseModel):
    """Where a started or restarted stream can be played."""

    stream_id: str
    hls_path: str
    hls_abs_url: str


class BitrateResponse(BaseModel):
    bitrate: float | None = None
    history: list[BitrateSampleModel] = Field(default_factory=list)
    hls_abs_url: str


class BitrateHistoryResponse(BaseModel):
    history: list[BitrateSampleModel] = Field(default_factory=list)


class ActiveStreamResponse(BaseModel):
    """Snapshot of one known stream."""

    stream_id: str
    source_url: str
    display_name: str | None = None
    resolution: Resolution
    running: bool
    pid: int | None = None
    bitrate: float | None = None
    viewers: int = 0
    signal_lost: bool = False
    hls_path: str
    hls_abs_url: str


class ActiveStreamListResponse(BaseModel):
    streams: list[ActiveStreamResponse] = Field(default_factory=list)
