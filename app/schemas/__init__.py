"""Schemas shared across the API, domain and services layers."""

from .stream_enums import Resolution, StreamEventType

__all__ = [
    "Resolution",
    "StreamEventType",
]
