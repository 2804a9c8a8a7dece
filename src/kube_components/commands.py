"""Local command runner used by version probes."""

import asyncio
import logging

from .protocols import CommandResult

logger = logging.getLogger(__name__)


class SubprocessRunner:
    """Run a command with asyncio subprocesses (implements CommandRunnerProtocol).

    A timed-out or cancelled command is killed before the error propagates.
    ``TimeoutError`` is an ``OSError``, so probes treat a hung binary like a
    missing one.
    """

    def __init__(self, timeout: float = 30.0):
        self.timeout = timeout

    async def run(self, argv: list[str]) -> CommandResult:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except (TimeoutError, asyncio.CancelledError):
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()
            raise

        logger.debug(f"{argv[0]} exited with {proc.returncode}")
        return CommandResult(
            returncode=proc.returncode if proc.returncode is not None else -1,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )
