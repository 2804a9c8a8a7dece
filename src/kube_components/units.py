"""One-shot service units - one systemd unit per component.

Each component gets its own ``<name>-install.service`` so that a failed
containerd download never blocks runc. Enabling and starting the units is
left to the service manager.
"""

import logging
import shlex
import textwrap
from pathlib import Path

from .schema import ComponentSpec

logger = logging.getLogger(__name__)

DEFAULT_EXECUTABLE = "/usr/local/bin/kube-components"


def unit_name(spec: ComponentSpec) -> str:
    return f"{spec.name}-install.service"


def render_unit(
    spec: ComponentSpec,
    executable: str = DEFAULT_EXECUTABLE,
    config_paths: list[Path] | None = None,
    arch: str | None = None,
    ledger_path: Path | None = None,
) -> str:
    """Render the oneshot unit text that runs ``ensure <name>`` at boot."""
    argv = [executable, "--syslog"]
    for path in config_paths or []:
        argv += ["--config", str(path)]
    argv += ["ensure", spec.name]
    if arch:
        argv += ["--arch", arch]
    if ledger_path:
        argv += ["--ledger", str(ledger_path)]

    return textwrap.dedent(f"""\
        [Unit]
        Description=Install and update component {spec.name}
        After=network.target
        Wants=network-online.target

        [Service]
        Type=oneshot
        ExecStart={shlex.join(argv)}
        RemainAfterExit=yes
        SyslogIdentifier={spec.log_tag}

        [Install]
        WantedBy=multi-user.target
        """)


def write_units(
    specs: list[ComponentSpec],
    directory: Path,
    executable: str = DEFAULT_EXECUTABLE,
    config_paths: list[Path] | None = None,
    arch: str | None = None,
    ledger_path: Path | None = None,
) -> list[Path]:
    """Write one unit file per spec into ``directory``; returns the paths written."""
    directory.mkdir(parents=True, exist_ok=True)
    written = []
    for spec in specs:
        path = directory / unit_name(spec)
        path.write_text(render_unit(spec, executable, config_paths, arch, ledger_path))
        logger.info(f"Wrote {path}")
        written.append(path)
    return written
