"""
Live streaming domain logic.

Includes:
- stream: transcoder lifecycle, bitrate monitoring and viewer-driven cleanup.
"""
