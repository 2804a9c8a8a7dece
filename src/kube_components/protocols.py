"""Protocols for the installer's I/O collaborators.

The installer never talks to the network or spawns processes directly;
callers inject a fetcher and a command runner. Tests pass in-memory fakes.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol
from typing import runtime_checkable


@dataclass(frozen=True)
class CommandResult:
    """Captured result of one finished command."""

    returncode: int
    stdout: str
    stderr: str = ""


@runtime_checkable
class ArtifactFetcherProtocol(Protocol):
    """Protocol for artifact download sources.

    Implementations: RequestsFetcher (HTTPS), or any test double.
    """

    async def fetch(self, url: str, dest: Path) -> None:
        """Download ``url`` into the file ``dest``.

        Args:
            url: Absolute URL of the artifact
            dest: File to write (its parent directory exists)

        Raises:
            Exception: On transport errors or non-2xx responses
        """
        ...


@runtime_checkable
class CommandRunnerProtocol(Protocol):
    """Protocol for running a local command and capturing its output."""

    async def run(self, argv: list[str]) -> CommandResult:
        """Run ``argv`` to completion.

        Raises:
            OSError: If the executable cannot be started
        """
        ...
