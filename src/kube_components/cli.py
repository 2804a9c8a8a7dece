"""kube-components command line.

Thin click wrappers over the library. Each systemd unit calls
``kube-components --syslog ensure <name>``; operators use ``check`` and
``list`` interactively.
"""

import asyncio
import json
import logging
import logging.handlers
from pathlib import Path

import click

from . import __version__
from .commands import SubprocessRunner
from .exceptions import ComponentConfigError
from .fetch import RequestsFetcher
from .inspection import inspect_components
from .installer import DEFAULT_ARCH
from .installer import DEFAULT_DOWNLOAD_TIMEOUT
from .installer import OutcomeStatus
from .installer import ensure_all
from .ledger import InstallLedger
from .resolver import ComponentResolver
from .resolver import bundled_config_path
from .resolver import default_search_paths
from .schema import ComponentSpec
from .units import DEFAULT_EXECUTABLE
from .units import write_units

logger = logging.getLogger(__name__)

SYSLOG_ADDRESS = "/dev/log"


class _RecordDefaults(logging.Filter):
    """Give records outside a component run the fields the formatters use."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "log_tag"):
            record.log_tag = "kube-components"
        if not hasattr(record, "component"):
            record.component = "-"
        return True


def configure_logging(verbose: bool = False, syslog: bool = False) -> None:
    """Log to stderr, and optionally to syslog tagged ``<component>-installer``."""
    root = logging.getLogger("kube_components")
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.handlers.clear()

    stderr = logging.StreamHandler()
    stderr.setFormatter(logging.Formatter("%(asctime)s %(levelname)-7s %(message)s"))
    stderr.addFilter(_RecordDefaults())
    root.addHandler(stderr)

    if syslog:
        try:
            handler = logging.handlers.SysLogHandler(address=SYSLOG_ADDRESS)
        except OSError as e:
            logger.warning(f"Syslog unavailable at {SYSLOG_ADDRESS}: {e}")
            return
        handler.setFormatter(logging.Formatter("%(log_tag)s: [%(levelname)s] %(message)s"))
        handler.addFilter(_RecordDefaults())
        root.addHandler(handler)


def _select_specs(resolver: ComponentResolver, names: tuple[str, ...], default_all: bool) -> list[ComponentSpec]:
    try:
        if names:
            return resolver.resolve_many(list(names))
        if default_all:
            return resolver.list_components()
    except ComponentConfigError as e:
        raise click.ClickException(e.message) from e
    raise click.UsageError("Name at least one component, or pass --all.")


@click.group()
@click.option(
    "--config",
    "config_paths",
    multiple=True,
    type=click.Path(path_type=Path, dir_okay=False),
    envvar="KUBE_COMPONENTS_CONFIG",
    help="Extra component table (TOML). Repeatable; later files win.",
)
@click.option("--no-site-config", is_flag=True, help="Ignore /etc/kube-components/components.toml.")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging.")
@click.option("--syslog", is_flag=True, help="Also log to syslog, tagged <component>-installer.")
@click.version_option(__version__, prog_name="kube-components")
@click.pass_context
def cli(ctx: click.Context, config_paths: tuple[Path, ...], no_site_config: bool, verbose: bool, syslog: bool) -> None:
    """Install and update Kubernetes node binaries at pinned versions."""
    configure_logging(verbose=verbose, syslog=syslog)
    ctx.ensure_object(dict)

    if no_site_config:
        search_paths = [bundled_config_path(), *config_paths]
    else:
        search_paths = default_search_paths(list(config_paths))
    ctx.obj["resolver"] = ComponentResolver(search_paths=search_paths)
    ctx.obj["config_paths"] = list(config_paths)


@cli.command("ensure")
@click.argument("names", nargs=-1)
@click.option("--all", "all_components", is_flag=True, help="Every known component.")
@click.option("--arch", default=DEFAULT_ARCH, show_default=True, help="Architecture in download URLs.")
@click.option(
    "--timeout",
    "download_timeout",
    type=float,
    default=DEFAULT_DOWNLOAD_TIMEOUT,
    show_default=True,
    help="Deadline in seconds for each download.",
)
@click.option("--ledger", "ledger_path", type=click.Path(path_type=Path, dir_okay=False), help="Record outcomes here.")
@click.option(
    "--scratch-dir",
    type=click.Path(path_type=Path, file_okay=False, exists=True),
    help="Parent directory for per-run scratch space.",
)
@click.pass_context
def ensure(
    ctx: click.Context,
    names: tuple[str, ...],
    all_components: bool,
    arch: str,
    download_timeout: float,
    ledger_path: Path | None,
    scratch_dir: Path | None,
) -> None:
    """Install NAMES at their target versions (skips those already current)."""
    specs = _select_specs(ctx.obj["resolver"], names, all_components)
    ledger = InstallLedger(ledger_path=ledger_path) if ledger_path else None

    outcomes = asyncio.run(
        ensure_all(
            specs,
            fetcher=RequestsFetcher(),
            runner=SubprocessRunner(),
            arch=arch,
            ledger=ledger,
            scratch_root=scratch_dir,
            download_timeout=download_timeout,
        )
    )

    for outcome in outcomes:
        if outcome.status is OutcomeStatus.SKIPPED:
            click.echo(f"= {outcome.component}: up to date ({outcome.previous_version})")
        elif outcome.status is OutcomeStatus.INSTALLED:
            click.secho(
                f"✓ {outcome.component}: installed {outcome.new_version} (was {outcome.previous_version})",
                fg="green",
            )
        else:
            click.secho(f"✗ {outcome.component}: {outcome.stage} failed: {outcome.error}", fg="red", err=True)

    if any(not outcome.ok for outcome in outcomes):
        ctx.exit(1)


@cli.command("check")
@click.argument("names", nargs=-1)
@click.option("--ledger", "ledger_path", type=click.Path(path_type=Path, dir_okay=False), help="Ledger to report from.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def check(ctx: click.Context, names: tuple[str, ...], ledger_path: Path | None, as_json: bool) -> None:
    """Report installed versions against targets."""
    specs = _select_specs(ctx.obj["resolver"], names, default_all=True)
    ledger = InstallLedger(ledger_path=ledger_path) if ledger_path else None
    statuses = asyncio.run(inspect_components(specs, SubprocessRunner(), ledger))

    if as_json:
        payload = [{**status.model_dump(mode="json"), "up_to_date": status.up_to_date} for status in statuses]
        click.echo(json.dumps(payload, indent=2))
        return

    for status in statuses:
        if status.up_to_date:
            mark, color = "✓", "green"
        elif status.present:
            mark, color = "!", "yellow"
        else:
            mark, color = "✗", "red"
        line = f"{mark} {status.component}: {status.current_version} (target {status.target_version}) {status.install_path}"
        if status.present and not status.executable:
            line += " [not executable]"
        if status.last_outcome:
            line += f" last run: {status.last_outcome} at {status.last_recorded_at}"
        click.secho(line, fg=color)


@cli.command("list")
@click.pass_context
def list_components(ctx: click.Context) -> None:
    """Show the resolved component table."""
    specs = _select_specs(ctx.obj["resolver"], (), default_all=True)
    for spec in specs:
        click.echo(f"{spec.name:<12} {spec.target_version:<10} {spec.archive.kind.value:<10} {spec.install_path}")


@cli.command("units")
@click.argument("names", nargs=-1)
@click.option(
    "--output-dir",
    required=True,
    type=click.Path(path_type=Path, file_okay=False),
    help="Where to write <name>-install.service files.",
)
@click.option("--executable", default=DEFAULT_EXECUTABLE, show_default=True, help="Path units use to run this CLI.")
@click.option("--arch", default=None, help="Architecture passed to ensure.")
@click.option("--ledger", "ledger_path", type=click.Path(path_type=Path, dir_okay=False), help="Ledger passed to ensure.")
@click.pass_context
def units(
    ctx: click.Context,
    names: tuple[str, ...],
    output_dir: Path,
    executable: str,
    arch: str | None,
    ledger_path: Path | None,
) -> None:
    """Write one oneshot systemd unit per component."""
    specs = _select_specs(ctx.obj["resolver"], names, default_all=True)
    config_paths = [path.resolve() for path in ctx.obj["config_paths"]]
    for path in write_units(specs, output_dir, executable, config_paths, arch, ledger_path):
        click.echo(str(path))


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
