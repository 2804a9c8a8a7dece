"""Version probes - ask an installed binary which version it is.

Each tool reports its version differently (``runc --version`` prints it as
the last field of the first line, ``kubectl version -o json`` nests it in
JSON, ``etcd --version`` prints several labelled lines), so the extraction
rule is part of the component's configuration.
"""

import json
import logging
import re
from pathlib import Path
from typing import Annotated
from typing import Literal

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator

from .protocols import CommandRunnerProtocol
from .utils import NO_VERSION
from .utils import normalize_version

logger = logging.getLogger(__name__)


class PlainTextLastField(BaseModel):
    """Last whitespace-separated field of one output line."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["plain_text_last_field"] = "plain_text_last_field"
    args: list[str] = Field(default_factory=lambda: ["--version"])
    line: int = 0

    def extract(self, raw_output: str) -> str | None:
        lines = [ln for ln in raw_output.splitlines() if ln.strip()]
        if self.line >= len(lines):
            return None
        fields = lines[self.line].split()
        return fields[-1] if fields else None


class JSONFieldPath(BaseModel):
    """Dotted field path into JSON output (e.g. ``clientVersion.gitVersion``)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["json_field_path"] = "json_field_path"
    args: list[str] = Field(default_factory=lambda: ["version", "-o", "json"])
    path: str

    def extract(self, raw_output: str) -> str | None:
        try:
            node = json.loads(raw_output)
        except json.JSONDecodeError:
            return None
        for key in self.path.split("."):
            if not isinstance(node, dict) or key not in node:
                return None
            node = node[key]
        if not isinstance(node, str):
            return None
        return node


class LogGrepPattern(BaseModel):
    """First regex match in the output; group 1 if the pattern has one."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["log_grep_pattern"] = "log_grep_pattern"
    args: list[str] = Field(default_factory=lambda: ["--version"])
    pattern: str

    @field_validator("pattern")
    @classmethod
    def _compiles(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"invalid regex '{value}': {e}") from e
        return value

    def extract(self, raw_output: str) -> str | None:
        match = re.search(self.pattern, raw_output, re.MULTILINE)
        if match is None:
            return None
        return match.group(1) if match.groups() else match.group(0)


VersionProbe = Annotated[
    PlainTextLastField | JSONFieldPath | LogGrepPattern,
    Field(discriminator="kind"),
]


async def probe_version(
    binary: Path,
    probe: PlainTextLastField | JSONFieldPath | LogGrepPattern,
    runner: CommandRunnerProtocol,
) -> str:
    """Return the normalized version of ``binary``, or ``"none"``.

    A missing binary is the expected first-run state, so every failure mode
    (absent file, spawn error, non-zero exit, empty or unparsable output)
    yields the sentinel instead of raising.
    """
    if not binary.is_file():
        logger.debug(f"{binary} not present")
        return NO_VERSION

    argv = [str(binary), *probe.args]
    try:
        result = await runner.run(argv)
    except OSError as e:
        logger.debug(f"Could not run {argv}: {e}")
        return NO_VERSION

    if result.returncode != 0:
        logger.debug(f"{argv} exited with {result.returncode}")
        return NO_VERSION

    extracted = probe.extract(result.stdout)
    if not extracted:
        logger.debug(f"Could not extract version from output of {argv}")
        return NO_VERSION

    return normalize_version(extracted)
