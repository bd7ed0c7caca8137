"""Child process termination with platform-specific escalation.

`terminate()` is the single entry point used by stop/restart: it asks the
process to exit, waits a bounded time, then escalates to a forced kill chosen
from `KILL_STRATEGIES` for the current platform.
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from loguru import logger


class ProcessHandle(Protocol):
    """The subset of `asyncio.subprocess.Process` the supervisor relies on."""

    pid: int
    returncode: int | None
    stdout: asyncio.StreamReader | None
    stderr: asyncio.StreamReader | None

    def terminate(self) -> None: ...

    def kill(self) -> None: ...

    async def wait(self) -> int: ...


class TerminationResult(str, Enum):
    ALREADY_EXITED = "already_exited"
    EXITED = "exited"
    KILLED = "killed"
    UNCONFIRMED = "unconfirmed"

    @property
    def confirmed_dead(self) -> bool:
        return self is not TerminationResult.UNCONFIRMED


def is_alive(handle: ProcessHandle | None) -> bool:
    return handle is not None and handle.returncode is None


def _send_terminate(handle: ProcessHandle) -> None:
    handle.terminate()


async def _send_kill(handle: ProcessHandle) -> None:
    handle.kill()


async def _taskkill_tree(handle: ProcessHandle) -> None:
    # ffmpeg may have spawned helpers; /T takes the whole tree down.
    proc = await asyncio.create_subprocess_exec(
        "taskkill",
        "/PID",
        str(handle.pid),
        "/T",
        "/F",
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.DEVNULL,
    )
    await proc.wait()


@dataclass(frozen=True, slots=True)
class KillStrategy:
    graceful: Callable[[ProcessHandle], None]
    force: Callable[[ProcessHandle], Awaitable[None]]


KILL_STRATEGIES: dict[str, KillStrategy] = {
    "posix": KillStrategy(graceful=_send_terminate, force=_send_kill),
    "win32": KillStrategy(graceful=_send_terminate, force=_taskkill_tree),
}


def get_kill_strategy(platform: str | None = None) -> KillStrategy:
    platform = platform or sys.platform
    return KILL_STRATEGIES["win32" if platform.startswith("win") else "posix"]


async def force_kill(handle: ProcessHandle, *, platform: str | None = None) -> None:
    """Kill without waiting. Errors from an already-dead process are ignored."""
    if not is_alive(handle):
        return

    try:
        await get_kill_strategy(platform).force(handle)
    except (ProcessLookupError, OSError) as e:
        logger.debug(f"Force kill of pid={handle.pid} failed, process may already be gone: {e}")


async def terminate(
    handle: ProcessHandle,
    timeout: float,
    *,
    confirm_timeout: float = 2.0,
    platform: str | None = None,
) -> TerminationResult:
    """Gracefully terminate a process, escalating to a forced kill after `timeout`.

    Args:
        handle: Process to terminate
        timeout: Seconds to wait for a graceful exit
        confirm_timeout: Seconds to wait for the exit after the forced kill
        platform: Override of `sys.platform` when picking the kill strategy

    Returns:
        How the process ended; UNCONFIRMED when it still had not exited
        after the forced kill.
    """
    if not is_alive(handle):
        return TerminationResult.ALREADY_EXITED

    strategy = get_kill_strategy(platform)
    pid = handle.pid

    logger.info(f"Attempting to gracefully terminate process {pid}")
    try:
        strategy.graceful(handle)
    except ProcessLookupError:
        logger.debug(f"Process {pid} already gone before terminate")

    try:
        await asyncio.wait_for(handle.wait(), timeout=timeout)
        logger.info(f"Process {pid} exited")
        return TerminationResult.EXITED
    except asyncio.TimeoutError:
        logger.error(f"Timeout waiting for process {pid} to exit after {timeout}s. Forcing kill.")

    try:
        await strategy.force(handle)
    except (ProcessLookupError, OSError) as e:
        logger.warning(f"Forced kill of process {pid} raised: {e}")

    try:
        await asyncio.wait_for(handle.wait(), timeout=confirm_timeout)
        logger.info(f"Process {pid} killed")
        return TerminationResult.KILLED
    except asyncio.TimeoutError:
        logger.error(f"Process {pid} still not confirmed dead {confirm_timeout}s after forced kill")
        return TerminationResult.UNCONFIRMED
