"""Media server play notification schemas.

The RTMP/HLS media server reports each viewer session start and end with
the stream path it was requested on, e.g. `/live/<stream_id>`.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class PlayNotification(BaseModel):
    stream_path: str = Field(..., min_length=1, description="Requested path, last segment is the stream id")
    client_id: str | None = None


class ViewerCountOut(BaseModel):
    stream_id: str
    viewers: int | None = Field(None, description="None when the stream is unknown")
