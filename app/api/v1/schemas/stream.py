from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from app.schemas import Resolution


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class StreamRefIn(BaseModel):
    """Identifies a stream by id, by source URL, or by both when they agree."""

    stream_id: str | None = Field(None, description="md5 hex of the source URL")
    source_url: str | None = Field(None, description="Source URL as originally submitted")

    blank_to_none = field_validator("stream_id", "source_url", mode="before")(_blank_to_none)

    @model_validator(mode="after")
    def require_reference(self) -> "StreamRefIn":
        if not self.stream_id and not self.source_url:
            raise ValueError("stream_id or source_url is required")
        return self


class StartStreamIn(BaseModel):
    source_url: str = Field(..., min_length=1, description="RTMP/RTSP/UDP/HTTP source URL")
    display_name: str | None = Field(None, max_length=200)
    resolution: Resolution | None = None

    blank_to_none = field_validator("display_name", mode="before")(_blank_to_none)

    @field_validator("resolution", mode="before")
    @classmethod
    def parse_resolution(cls, value: Any) -> Any:
        # Unknown profiles fall back to the default instead of failing the request.
        if value is None or value == "":
            return None
        return Resolution.parse(value)


class RestartStreamIn(StreamRefIn):
    display_name: str | None = Field(None, max_length=200)
    resolution: Resolution | None = None

    blank_display_name = field_validator("display_name", mode="before")(_blank_to_none)

    @field_validator("resolution", mode="before")
    @classmethod
    def parse_resolution(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        return Resolution.parse(value)


class BitrateHistoryIn(StreamRefIn):
    max_samples: int = Field(300, ge=0, le=3600)


class ProbeIn(BaseModel):
    source_url: str = Field(..., min_length=1)


class StreamUrlsOut(BaseModel):
    stream_id: str
    hls_path: str
    hls_abs_url: str


class StopStreamOut(BaseModel):
    stream_id: str
    stopped: bool = True
