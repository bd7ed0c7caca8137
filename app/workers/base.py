"""In-process periodic job runner.

The supervisor's state lives in one process, so its periodic work runs on
the same event loop instead of an external queue. Jobs are registered with
`every()` and run until `stop()`; a job that raises is logged and keeps its
schedule.

Usage:
    runner = JobRunner()

    @runner.every(5, name="stale-sweep")
    async def stale_sweep() -> None:
        ...

    runner.start()
    ...
    await runner.stop()
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from loguru import logger

JobFunc = Callable[[], Awaitable[object] | object]


@dataclass
class Job:
    name: str
    interval: float
    func: JobFunc
    run_count: int = 0
    error_count: int = 0
    task: asyncio.Task | None = field(default=None, repr=False)

    async def run_once(self) -> None:
        try:
            result = self.func()
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.error_count += 1
            logger.exception(f"Job {self.name} failed: {e}")
        finally:
            self.run_count += 1


class JobRunner:
    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}

    @property
    def jobs(self) -> list[Job]:
        return list(self._jobs.values())

    @property
    def running(self) -> bool:
        return any(job.task is not None and not job.task.done() for job in self._jobs.values())

    def add(self, name: str, interval: float, func: JobFunc) -> Job:
        if interval <= 0:
            raise ValueError(f"Job {name} needs a positive interval, got {interval}")
        if name in self._jobs:
            raise ValueError(f"Job {name} already registered")
        job = Job(name=name, interval=interval, func=func)
        self._jobs[name] = job
        return job

    def every(self, interval: float, *, name: str | None = None) -> Callable[[JobFunc], JobFunc]:
        def decorator(func: JobFunc) -> JobFunc:
            self.add(name or func.__name__, interval, func)
            return func

        return decorator

    async def _loop(self, job: Job) -> None:
        while True:
            await asyncio.sleep(job.interval)
            await job.run_once()

    def start(self) -> None:
        for job in self._jobs.values():
            if job.task is not None and not job.task.done():
                continue
            job.task = asyncio.create_task(self._loop(job), name=f"job:{job.name}")
            logger.info(f"Job {job.name} scheduled every {job.interval}s")

    async def stop(self) -> None:
        tasks = [job.task for job in self._jobs.values() if job.task is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        for job in self._jobs.values():
            job.task = None
        if tasks:
            logger.info(f"Stopped {len(tasks)} periodic jobs")


__all__ = ["Job", "JobRunner"]
