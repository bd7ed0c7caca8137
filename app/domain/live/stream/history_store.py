"""Best-effort persistence of bitrate history across restarts.

The snapshot is one JSON object keyed by stream id, each value a list of
`{time, bitrate, estimated}` samples. Writes go to a sibling temp file that
is then moved over the target, so a crash mid-write leaves the previous
snapshot intact.
"""

import os
from pathlib import Path

import orjson
from loguru import logger

from .stream_registry import (
    HISTORY_MAX_AGE_SECONDS,
    HISTORY_MAX_SAMPLES,
    BitrateSample,
    prune_history,
)


def _parse_sample(raw: object) -> BitrateSample | None:
    if not isinstance(raw, dict):
        return None
    try:
        return BitrateSample(
            time=int(raw["time"]),
            bitrate=float(raw["bitrate"]),
            estimated=bool(raw.get("estimated", False)),
        )
    except (KeyError, TypeError, ValueError):
        return None


class HistoryStore:
    def __init__(
        self,
        path: str | Path,
        *,
        max_samples: int = HISTORY_MAX_SAMPLES,
        max_age_seconds: float = HISTORY_MAX_AGE_SECONDS,
    ):
        self.path = Path(path)
        self.max_samples = max_samples
        self.max_age_seconds = max_age_seconds

    def save(self, snapshot: dict[str, list[BitrateSample]]) -> bool:
        data = {stream_id: [s.to_dict() for s in samples] for stream_id, samples in snapshot.items()}
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(orjson.dumps(data))
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error(f"Failed to save bitrate history to {self.path}: {e}")
            return False

        logger.info(f"Bitrate history saved ({len(data)} streams)")
        return True

    def load(self, now: float) -> dict[str, list[BitrateSample]]:
        """Read the snapshot, dropping samples older than a day.

        A missing, unreadable or malformed file yields an empty mapping.
        """
        if not self.path.exists():
            return {}

        try:
            data = orjson.loads(self.path.read_bytes())
        except (OSError, orjson.JSONDecodeError) as e:
            logger.error(f"Failed to load bitrate history from {self.path}: {e}")
            return {}

        if not isinstance(data, dict):
            logger.error(f"Ignoring bitrate history in {self.path}: not a JSON object")
            return {}

        histories: dict[str, list[BitrateSample]] = {}
        for stream_id, raw_samples in data.items():
            if not isinstance(raw_samples, list):
                continue
            samples = [s for s in map(_parse_sample, raw_samples) if s is not None]
            samples.sort(key=lambda s: s.time)
            samples = prune_history(
                samples, now, max_samples=self.max_samples, max_age_seconds=self.max_age_seconds
            )
            if samples:
                histories[stream_id] = samples

        logger.info(f"Bitrate history loaded and pruned ({len(histories)} streams)")
        return histories
