"""Periodic supervisor jobs: liveness sweep, idle backstop and history snapshot."""

from loguru import logger

from app.app_config import AppEnvironConfig
from app.domain.live.stream.stream_domain import StreamService
from app.workers.base import JobRunner

STALE_SWEEP_JOB = "stale-sweep"
IDLE_SWEEP_JOB = "idle-sweep"
HISTORY_SAVE_JOB = "history-save"


def register_stream_jobs(runner: JobRunner, service: StreamService, cfg: AppEnvironConfig) -> JobRunner:
    @runner.every(cfg.STALE_SWEEP_INTERVAL_SECONDS, name=STALE_SWEEP_JOB)
    def stale_sweep() -> None:
        marked = service.run_stale_sweep()
        if marked:
            logger.debug(f"Stale sweep marked {len(marked)} streams down")

    @runner.every(cfg.IDLE_SWEEP_INTERVAL_SECONDS, name=IDLE_SWEEP_JOB)
    async def idle_sweep() -> None:
        reaped = await service.run_idle_sweep()
        if reaped:
            logger.info(f"Idle sweep cleaned up streams: {', '.join(reaped)}")

    @runner.every(cfg.HISTORY_SAVE_INTERVAL_SECONDS, name=HISTORY_SAVE_JOB)
    def history_save() -> None:
        service.save_history()

    return runner


__all__ = ["HISTORY_SAVE_JOB", "IDLE_SWEEP_JOB", "STALE_SWEEP_JOB", "register_stream_jobs"]
