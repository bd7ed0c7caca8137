"""Stream identity derived from the source URL."""

import hashlib


def resolve_stream_id(source_url: str) -> str:
    """Return the stable stream id for a source URL.

    The id is the MD5 hex digest of the exact URL string. No normalization is
    applied: URLs differing only in case or surrounding whitespace produce
    different ids and therefore different sessions.
    """
    return hashlib.md5(source_url.encode("utf-8")).hexdigest()


def stream_id_from_path(stream_path: str) -> str:
    """Map a media-server stream path such as `/live/<id>` back to the id."""
    return stream_path.rstrip("/").rsplit("/", 1)[-1]
