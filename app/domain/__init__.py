"""
Domain layer containing core business logic.

Submodules:
- live.stream: supervision of ffmpeg HLS transcoders (lifecycle, bitrate telemetry, sweeps).
"""
