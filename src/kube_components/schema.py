"""Component descriptor schema - parse component tables from TOML.

A component table looks like::

    [components.runc]
    target_version = "v1.1.12"
    repository = "https://github.com/opencontainers/runc/releases/download"
    binary_url = "{repository}/{version}/runc.{arch}"
    checksum_url = "{repository}/{version}/runc.sha256sum"
    install_path = "/usr/local/bin/runc"
    probe = { kind = "plain_text_last_field" }
    checksum = { kind = "manifest" }
"""

import tomllib
from enum import Enum
from pathlib import Path
from posixpath import basename
from urllib.parse import urlsplit

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import ValidationError
from pydantic import model_validator

from .checksum import ChecksumRule
from .exceptions import ComponentConfigError
from .probes import PlainTextLastField
from .probes import VersionProbe
from .utils import render_template
from .utils import template_values


class ArchiveKind(str, Enum):
    RAW_BINARY = "raw_binary"
    TAR_GZ = "tar_gz"


class ArchiveSpec(BaseModel):
    """Whether the download is the binary itself or an archive of binaries.

    ``members`` are paths inside the archive (templates, glob characters
    allowed, e.g. ``bin/containerd-shim*``). Each matched file is installed
    under its basename next to the component's ``install_path``.
    """

    model_config = ConfigDict(frozen=True)

    kind: ArchiveKind = ArchiveKind.RAW_BINARY
    members: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _members_match_kind(self) -> "ArchiveSpec":
        if self.kind is ArchiveKind.TAR_GZ and not self.members:
            raise ValueError("tar_gz archives must list the members to install")
        if self.kind is ArchiveKind.RAW_BINARY and self.members:
            raise ValueError("raw_binary downloads cannot have archive members")
        for member in self.members:
            if member.startswith("/") or ".." in member.split("/"):
                raise ValueError(f"archive member '{member}' must be a relative path inside the archive")
        return self


class ComponentSpec(BaseModel):
    """Static description of how to probe, fetch, verify and install one tool."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    target_version: str = Field(min_length=1)
    repository: str
    binary_url: str
    checksum_url: str
    install_path: Path
    probe: VersionProbe = Field(default_factory=PlainTextLastField)
    checksum: ChecksumRule = Field(default_factory=ChecksumRule)
    archive: ArchiveSpec = Field(default_factory=ArchiveSpec)
    # Local filename for the downloaded artifact; defaults to the URL basename.
    artifact_name: str | None = None

    @model_validator(mode="after")
    def _absolute_install_path(self) -> "ComponentSpec":
        if not self.install_path.is_absolute():
            raise ValueError(f"install_path must be absolute, got '{self.install_path}'")
        return self

    @property
    def install_dir(self) -> Path:
        return self.install_path.parent

    @property
    def log_tag(self) -> str:
        return f"{self.name}-installer"

    def _render(self, template: str, arch: str) -> str:
        return render_template(template, **template_values(self.repository, self.target_version, arch))

    def binary_url_for(self, arch: str) -> str:
        return self._render(self.binary_url, arch)

    def checksum_url_for(self, arch: str) -> str:
        return self._render(self.checksum_url, arch)

    def artifact_filename(self, arch: str) -> str:
        """Local filename of the downloaded artifact."""
        if self.artifact_name:
            return self._render(self.artifact_name, arch)
        name = basename(urlsplit(self.binary_url_for(arch)).path)
        if not name:
            raise ComponentConfigError(
                f"Cannot derive artifact filename from binary_url of '{self.name}'",
                context={"component": self.name},
            )
        return name

    def manifest_filename(self, arch: str) -> str:
        """Name the checksum manifest entry must carry."""
        if self.checksum.filename:
            return self._render(self.checksum.filename, arch)
        if self.checksum.kind == "single":
            return self.artifact_filename(arch)
        return basename(urlsplit(self.binary_url_for(arch)).path)

    def archive_members(self, arch: str) -> list[str]:
        return [self._render(member, arch) for member in self.archive.members]

    @classmethod
    def from_toml_table(cls, name: str, table: dict) -> "ComponentSpec":
        """Build a spec from one ``[components.<name>]`` table.

        Raises:
            ComponentConfigError: If required fields are missing or invalid
        """
        try:
            return cls.model_validate({**table, "name": name})
        except ValidationError as e:
            raise ComponentConfigError(
                f"Invalid configuration for component '{name}': {e}",
                context={"component": name},
            ) from e


def read_component_tables(path: Path) -> dict[str, dict]:
    """Read raw ``[components.*]`` tables from a TOML file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ComponentConfigError: If the TOML is invalid
    """
    if not path.exists():
        raise FileNotFoundError(f"Component table not found: {path}")

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ComponentConfigError(f"Invalid TOML in {path}: {e}", context={"path": str(path)}) from e

    components = data.get("components", {})
    if not isinstance(components, dict):
        raise ComponentConfigError(f"[components] must be a table in {path}", context={"path": str(path)})
    return components


def load_component_table(path: Path) -> dict[str, ComponentSpec]:
    """Load and validate every component in a single TOML file."""
    return {name: ComponentSpec.from_toml_table(name, table) for name, table in read_component_tables(path).items()}
