"""Post-install inspection - what is actually on disk right now.

Answers, per component: is the binary there, is it executable, which
version does it report, does that match the target, and what did the last
installer run record.
"""

import os
from pathlib import Path

from pydantic import BaseModel
from pydantic import ConfigDict

from .ledger import InstallLedger
from .probes import probe_version
from .protocols import CommandRunnerProtocol
from .schema import ComponentSpec
from .utils import NO_VERSION
from .utils import normalize_version


class ComponentStatus(BaseModel):
    """Inspection result for one component (immutable data structure)."""

    model_config = ConfigDict(frozen=True)

    component: str
    install_path: Path
    present: bool
    executable: bool
    current_version: str
    target_version: str
    last_outcome: str | None = None
    last_recorded_at: str | None = None

    @property
    def up_to_date(self) -> bool:
        return self.current_version != NO_VERSION and self.current_version == self.target_version


async def inspect_component(
    spec: ComponentSpec,
    runner: CommandRunnerProtocol,
    ledger: InstallLedger | None = None,
) -> ComponentStatus:
    """
    Inspect one component's installed binary.

    Example:
        >>> status = await inspect_component(resolver.resolve("etcd"), SubprocessRunner())
        >>> status.up_to_date
        True
    """
    path = spec.install_path
    present = path.is_file()
    entry = ledger.get_entry(spec.name) if ledger is not None else None

    return ComponentStatus(
        component=spec.name,
        install_path=path,
        present=present,
        executable=present and os.access(path, os.X_OK),
        current_version=await probe_version(path, spec.probe, runner),
        target_version=normalize_version(spec.target_version),
        last_outcome=entry.outcome if entry else None,
        last_recorded_at=entry.recorded_at if entry else None,
    )


async def inspect_components(
    specs: list[ComponentSpec],
    runner: CommandRunnerProtocol,
    ledger: InstallLedger | None = None,
) -> list[ComponentStatus]:
    """Inspect several components, in order."""
    return [await inspect_component(spec, runner, ledger) for spec in specs]
