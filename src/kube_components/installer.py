"""Versioned component installer.

One routine for every component: probe the installed version, compare it to
the target, and only then fetch, verify, extract and install.

Process for ensure_installed():
1. Probe the binary at install_path ("none" if absent or unreadable)
2. Compare normalized versions; equal means skipped, no network I/O
3. Create a scratch directory, removed on every exit path
4. Download the binary artifact
5. Download the checksum manifest
6. Verify the artifact digest against its manifest entry
7. Extract archive members (tar_gz only)
8. Install atomically (temp file in the target directory, then rename)
9. Log and record the outcome
"""

import asyncio
import logging
import os
import shutil
import tarfile
import tempfile
import zlib
from enum import Enum
from pathlib import Path

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field

from .checksum import verify_artifact
from .exceptions import ComponentError
from .exceptions import DownloadError
from .exceptions import ExtractionError
from .exceptions import InstallIOError
from .ledger import InstallLedger
from .probes import probe_version
from .protocols import ArtifactFetcherProtocol
from .protocols import CommandRunnerProtocol
from .schema import ArchiveKind
from .schema import ComponentSpec
from .utils import NO_VERSION
from .utils import normalize_version

logger = logging.getLogger(__name__)

DEFAULT_ARCH = "amd64"
DEFAULT_DOWNLOAD_TIMEOUT = 300.0
BINARY_MODE = 0o755


class OutcomeStatus(str, Enum):
    SKIPPED = "skipped"
    INSTALLED = "installed"
    FAILED = "failed"


class InstallOutcome(BaseModel):
    """Result of one installer run. Not persisted except via the ledger."""

    model_config = ConfigDict(frozen=True)

    component: str
    status: OutcomeStatus
    previous_version: str = NO_VERSION
    new_version: str | None = None
    stage: str | None = None
    error: str | None = None
    installed_files: list[Path] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status is not OutcomeStatus.FAILED


class ComponentLogAdapter(logging.LoggerAdapter):
    """Prefix messages with the component and stamp its syslog tag.

    Per-call ``extra`` is merged over the adapter's own, so the final record
    can carry versions and outcome.
    """

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return f"[{self.extra['component']}] {msg}", kwargs


def component_logger(spec: ComponentSpec) -> ComponentLogAdapter:
    return ComponentLogAdapter(logger, {"component": spec.name, "log_tag": spec.log_tag})


async def _download(
    fetcher: ArtifactFetcherProtocol,
    url: str,
    dest: Path,
    artifact: str,
    timeout: float | None,
    context: dict,
) -> None:
    context = {**context, "url": url}
    try:
        await asyncio.wait_for(fetcher.fetch(url, dest), timeout=timeout)
    except TimeoutError as e:
        raise DownloadError(f"Timed out after {timeout}s downloading {artifact} from {url}", artifact, context) from e
    except Exception as e:
        raise DownloadError(f"Failed to download {artifact} from {url}: {e}", artifact, context) from e


def _extract_members(archive: Path, dest: Path, members: list[str], context: dict) -> list[Path]:
    """Unpack a .tar.gz and return the files matching ``members``.

    Raises:
        ExtractionError: Malformed archive or a member pattern with no match
    """
    context = {**context, "archive": archive.name}
    dest.mkdir(parents=True, exist_ok=True)
    try:
        with tarfile.open(archive, "r:gz") as tar:
            tar.extractall(dest, filter="data")
    except (tarfile.TarError, OSError, EOFError, zlib.error) as e:
        raise ExtractionError(f"Failed to extract {archive.name}: {e}", context=context) from e
    except Exception as e:
        raise ExtractionError(f"Unexpected error extracting {archive.name}: {e}", context=context) from e

    found: list[Path] = []
    for member in members:
        matches = sorted(p for p in dest.glob(member) if p.is_file())
        if not matches:
            raise ExtractionError(
                f"Archive {archive.name} has no member matching '{member}'",
                context={**context, "member": member},
            )
        found.extend(matches)
    return found


def _install_files(pairs: list[tuple[Path, Path]], context: dict) -> list[Path]:
    """Copy each source over its target atomically.

    Every file is first staged as a hidden temp file next to its target; only
    when all copies succeed are they renamed into place. A failure removes
    the staged files and leaves existing binaries untouched.
    """
    staged: list[tuple[Path, Path]] = []
    try:
        for source, target in pairs:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", dir=target.parent)
            tmp = Path(tmp_name)
            staged.append((tmp, target))
            with os.fdopen(fd, "wb") as out, open(source, "rb") as src:
                shutil.copyfileobj(src, out)
            os.chmod(tmp, BINARY_MODE)

        for tmp, target in staged:
            os.replace(tmp, target)
    except OSError as e:
        for tmp, _ in staged:
            tmp.unlink(missing_ok=True)
        raise InstallIOError(f"Failed to install {[str(t) for _, t in pairs]}: {e}", context=context) from e

    return [target for _, target in staged]


async def _fetch_verify_install(
    spec: ComponentSpec,
    fetcher: ArtifactFetcherProtocol,
    arch: str,
    scratch_root: Path | None,
    download_timeout: float | None,
    context: dict,
) -> list[Path]:
    log = component_logger(spec)
    binary_url = spec.binary_url_for(arch)
    checksum_url = spec.checksum_url_for(arch)

    with tempfile.TemporaryDirectory(prefix=f"{spec.log_tag}-", dir=scratch_root) as tmp:
        scratch = Path(tmp)
        log.debug(f"Working directory: {scratch}")
        downloads = scratch / "download"
        downloads.mkdir()
        artifact = downloads / spec.artifact_filename(arch)
        manifest = scratch / "checksum-manifest"

        log.info(f"Downloading {binary_url}")
        await _download(fetcher, binary_url, artifact, "binary", download_timeout, context)

        log.info(f"Downloading checksum manifest {checksum_url}")
        await _download(fetcher, checksum_url, manifest, "checksum", download_timeout, context)

        log.info("Verifying checksum")
        verify_artifact(
            artifact,
            manifest.read_text(errors="replace"),
            spec.checksum,
            spec.manifest_filename(arch),
            context={**context, "url": binary_url},
        )

        if spec.archive.kind is ArchiveKind.TAR_GZ:
            log.info(f"Extracting {artifact.name}")
            sources = _extract_members(artifact, scratch / "extract", spec.archive_members(arch), context)
            pairs = [(source, spec.install_dir / source.name) for source in sources]
        else:
            pairs = [(artifact, spec.install_path)]

        log.info(f"Installing {', '.join(str(target) for _, target in pairs)}")
        return _install_files(pairs, context)


def _report_failure(spec: ComponentSpec, error: ComponentError, current: str, ledger: InstallLedger | None) -> None:
    component_logger(spec).error(
        f"{error.stage} failed: {error.message}",
        extra={"outcome": OutcomeStatus.FAILED.value, "old_version": current, "stage": error.stage},
    )
    if ledger is not None:
        ledger.record(spec.name, OutcomeStatus.FAILED.value, current, stage=error.stage)


async def ensure_installed(
    spec: ComponentSpec,
    *,
    fetcher: ArtifactFetcherProtocol,
    runner: CommandRunnerProtocol,
    arch: str = DEFAULT_ARCH,
    ledger: InstallLedger | None = None,
    scratch_root: Path | None = None,
    download_timeout: float | None = DEFAULT_DOWNLOAD_TIMEOUT,
) -> InstallOutcome:
    """
    Ensure the binary at ``spec.install_path`` is exactly ``spec.target_version``.

    Network I/O happens only when the probed version differs from the target,
    so a second run right after an install is skipped.

    Args:
        spec: Component descriptor
        fetcher: Artifact download source
        runner: Command runner for the version probe
        arch: Architecture substituted into URL templates
        ledger: Optional ledger to record the outcome in
        scratch_root: Parent for the per-run scratch directory (system temp by default)
        download_timeout: Deadline in seconds for each download (None: no deadline)

    Returns:
        InstallOutcome with status skipped or installed

    Raises:
        ComponentError: Subclass naming the failed stage (download, checksum,
            extract, install). The scratch directory is gone by then.

    Example:
        >>> outcome = await ensure_installed(
        ...     resolver.resolve("runc"),
        ...     fetcher=RequestsFetcher(),
        ...     runner=SubprocessRunner(),
        ... )
        >>> print(outcome.status)
    """
    log = component_logger(spec)
    target = normalize_version(spec.target_version)

    log.info("Checking current version")
    current = await probe_version(spec.install_path, spec.probe, runner)
    log.info(f"Current: {current}, Target: {target}")

    if current == target:
        outcome = InstallOutcome(component=spec.name, status=OutcomeStatus.SKIPPED, previous_version=current)
        log.info(
            "Already up to date, skipping installation",
            extra={"outcome": outcome.status.value, "old_version": current, "new_version": current},
        )
        if ledger is not None:
            ledger.record(spec.name, outcome.status.value, current, new_version=current)
        return outcome

    context = {"component": spec.name, "previous_version": current, "target_version": target}
    try:
        installed = await _fetch_verify_install(spec, fetcher, arch, scratch_root, download_timeout, context)
    except ComponentError as e:
        _report_failure(spec, e, current, ledger)
        raise
    except Exception as e:
        error = ComponentError(f"Failed to install {spec.name}: {e}", context=context)
        _report_failure(spec, error, current, ledger)
        raise error from e

    outcome = InstallOutcome(
        component=spec.name,
        status=OutcomeStatus.INSTALLED,
        previous_version=current,
        new_version=target,
        installed_files=installed,
    )
    log.info(
        f"Successfully updated from {current} to {target}",
        extra={"outcome": outcome.status.value, "old_version": current, "new_version": target},
    )
    if ledger is not None:
        ledger.record(spec.name, outcome.status.value, current, new_version=target)
    return outcome


async def ensure_all(
    specs: list[ComponentSpec],
    *,
    fetcher: ArtifactFetcherProtocol,
    runner: CommandRunnerProtocol,
    arch: str = DEFAULT_ARCH,
    ledger: InstallLedger | None = None,
    scratch_root: Path | None = None,
    download_timeout: float | None = DEFAULT_DOWNLOAD_TIMEOUT,
) -> list[InstallOutcome]:
    """
    Run ensure_installed for every spec concurrently.

    Components are isolated: one failure becomes a failed outcome and never
    stops its siblings. Outcomes come back in the order of ``specs``.
    """

    async def _one(spec: ComponentSpec) -> InstallOutcome:
        try:
            return await ensure_installed(
                spec,
                fetcher=fetcher,
                runner=runner,
                arch=arch,
                ledger=ledger,
                scratch_root=scratch_root,
                download_timeout=download_timeout,
            )
        except ComponentError as e:
            return InstallOutcome(
                component=spec.name,
                status=OutcomeStatus.FAILED,
                previous_version=e.context.get("previous_version", NO_VERSION),
                stage=e.stage,
                error=e.message,
            )
        except Exception as e:
            component_logger(spec).exception(f"Unexpected error ensuring {spec.name}")
            return InstallOutcome(
                component=spec.name,
                status=OutcomeStatus.FAILED,
                stage=ComponentError.stage,
                error=str(e),
            )

    return list(await asyncio.gather(*(_one(spec) for spec in specs)))
