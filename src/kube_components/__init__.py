"""kube-components - Idempotent, checksum-verified installs of Kubernetes node binaries.

Public API exports. Collaborators (fetcher, command runner, ledger, config
search paths) are injected by the caller; the CLI wires the defaults.
"""

from .checksum import ChecksumRule
from .checksum import expected_digest
from .checksum import file_digest
from .checksum import verify_artifact
from .commands import SubprocessRunner
from .exceptions import ChecksumMismatchError
from .exceptions import ComponentConfigError
from .exceptions import ComponentError
from .exceptions import DownloadError
from .exceptions import ExtractionError
from .exceptions import InstallIOError
from .fetch import RequestsFetcher
from .inspection import ComponentStatus
from .inspection import inspect_component
from .inspection import inspect_components
from .installer import InstallOutcome
from .installer import OutcomeStatus
from .installer import ensure_all
from .installer import ensure_installed
from .ledger import InstallLedger
from .ledger import LedgerEntry
from .probes import JSONFieldPath
from .probes import LogGrepPattern
from .probes import PlainTextLastField
from .probes import probe_version
from .protocols import ArtifactFetcherProtocol
from .protocols import CommandResult
from .protocols import CommandRunnerProtocol
from .resolver import ComponentResolver
from .resolver import default_search_paths
from .schema import ArchiveKind
from .schema import ArchiveSpec
from .schema import ComponentSpec
from .schema import load_component_table
from .units import render_unit
from .units import write_units
from .utils import NO_VERSION
from .utils import normalize_version

__all__ = [
    # Descriptors
    "ComponentSpec",
    "ArchiveSpec",
    "ArchiveKind",
    "ChecksumRule",
    "PlainTextLastField",
    "JSONFieldPath",
    "LogGrepPattern",
    "load_component_table",
    # Resolution
    "ComponentResolver",
    "default_search_paths",
    # Installation
    "ensure_installed",
    "ensure_all",
    "InstallOutcome",
    "OutcomeStatus",
    "probe_version",
    "expected_digest",
    "file_digest",
    "verify_artifact",
    # Collaborators
    "ArtifactFetcherProtocol",
    "CommandRunnerProtocol",
    "CommandResult",
    "RequestsFetcher",
    "SubprocessRunner",
    # Records and inspection
    "InstallLedger",
    "LedgerEntry",
    "ComponentStatus",
    "inspect_component",
    "inspect_components",
    # Service units
    "render_unit",
    "write_units",
    # Exceptions
    "ComponentError",
    "ComponentConfigError",
    "DownloadError",
    "ChecksumMismatchError",
    "ExtractionError",
    "InstallIOError",
    # Utilities
    "NO_VERSION",
    "normalize_version",
]

__version__ = "0.1.0"
