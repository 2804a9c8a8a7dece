"""Component installer exceptions.

Every fatal error names the component and the stage that failed, so an
operator can tell a dead network from a corrupted download from a full disk.
"""


class ComponentError(Exception):
    """Base exception for component operations."""

    stage = "unknown"

    def __init__(self, message: str, context: dict | None = None):
        """Initialize with message and optional context.

        Args:
            message: Human-readable error message
            context: Optional dict with additional context (component, url, path)
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}

    @property
    def component(self) -> str | None:
        return self.context.get("component")


class ComponentConfigError(ComponentError):
    """Invalid or unknown component configuration."""

    stage = "config"


class DownloadError(ComponentError):
    """Fetching the binary artifact or the checksum manifest failed."""

    def __init__(self, message: str, artifact: str, context: dict | None = None):
        super().__init__(message, context)
        self.artifact = artifact

    @property
    def stage(self) -> str:  # type: ignore[override]
        return f"download-{self.artifact}"


class ChecksumMismatchError(ComponentError):
    """Downloaded artifact does not match its manifest digest."""

    stage = "checksum-mismatch"


class ExtractionError(ComponentError):
    """Archive is malformed or lacks an expected member."""

    stage = "extract"


class InstallIOError(ComponentError):
    """Writing the binary into place failed."""

    stage = "install"
