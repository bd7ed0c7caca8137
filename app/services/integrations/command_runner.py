"""Run short-lived external tools with a deadline."""

import asyncio
from dataclasses import dataclass

from loguru import logger


@dataclass(slots=True)
class CommandResult:
    returncode: int | None
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.returncode == 0


async def run_command(program: str, *args: str, timeout: float) -> CommandResult:
    """Run `program` to completion, killing it once `timeout` seconds pass.

    Raises:
        OSError: The executable could not be started.
    """
    process = await asyncio.create_subprocess_exec(
        program,
        *args,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout)
    except TimeoutError:
        logger.warning(f"{program} timed out after {timeout}s (pid={process.pid})")
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()
        return CommandResult(returncode=process.returncode, stdout="", stderr="", timed_out=True)

    return CommandResult(
        returncode=process.returncode,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )
