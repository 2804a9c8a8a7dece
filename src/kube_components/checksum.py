"""Checksum manifests and artifact verification.

Two manifest shapes exist upstream:

- ``manifest``: ``<hash>  <filename>`` lines, possibly for many files
  (runc.sha256sum, etcd SHA256SUMS, containerd *.tar.gz.sha256sum).
  The entry for the artifact's exact filename is used.
- ``single``: the file holds just the digest (dl.k8s.io ``kubelet.sha256``,
  crictl ``*.tar.gz.sha256``), which applies to whatever we named the file.
"""

import hashlib
import logging
import re
from pathlib import Path
from typing import Literal

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import field_validator

from .exceptions import ChecksumMismatchError

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024
_HEX_DIGEST = re.compile(r"^[0-9a-fA-F]+$")


class ChecksumRule(BaseModel):
    """How to read a component's checksum manifest."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["manifest", "single"] = "manifest"
    algorithm: str = "sha256"
    # Filename template looked up in a multi-entry manifest; defaults to the
    # remote artifact name.
    filename: str | None = None

    @field_validator("algorithm")
    @classmethod
    def _known_algorithm(cls, value: str) -> str:
        if value not in hashlib.algorithms_guaranteed or value.startswith("shake_"):
            raise ValueError(f"unsupported digest algorithm '{value}'")
        return value


def expected_digest(rule: ChecksumRule, manifest_text: str, filename: str) -> str | None:
    """Extract the expected hex digest for ``filename`` from a manifest.

    Returns None when the manifest has no usable entry.
    """
    lines = [ln.strip() for ln in manifest_text.splitlines() if ln.strip()]

    if rule.kind == "single":
        if not lines:
            return None
        return lines[0].split()[0].lower()

    for line in lines:
        parts = line.split(maxsplit=1)
        if len(parts) != 2:
            continue
        digest, name = parts
        # sha256sum marks binary-mode entries with a leading '*'
        if name.lstrip("*").strip() == filename:
            return digest.lower()
    return None


def file_digest(path: Path, algorithm: str = "sha256") -> str:
    """Hex digest of a file, read in chunks."""
    h = hashlib.new(algorithm)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


def verify_artifact(
    artifact: Path,
    manifest_text: str,
    rule: ChecksumRule,
    filename: str,
    context: dict | None = None,
) -> str:
    """Check ``artifact`` against its manifest entry.

    Args:
        artifact: Downloaded file
        manifest_text: Raw checksum manifest
        rule: Manifest shape and algorithm
        filename: Name the manifest entry must carry (``manifest`` kind only)
        context: Extra error context (component name, urls)

    Returns:
        The verified hex digest

    Raises:
        ChecksumMismatchError: Missing entry, malformed digest or mismatch
    """
    context = {**(context or {}), "filename": filename, "algorithm": rule.algorithm}

    expected = expected_digest(rule, manifest_text, filename)
    if expected is None:
        raise ChecksumMismatchError(f"No checksum entry for '{filename}' in manifest", context=context)

    if not _HEX_DIGEST.match(expected) or len(expected) != hashlib.new(rule.algorithm).digest_size * 2:
        raise ChecksumMismatchError(f"Malformed {rule.algorithm} digest for '{filename}': {expected!r}", context=context)

    try:
        actual = file_digest(artifact, rule.algorithm)
    except OSError as e:
        raise ChecksumMismatchError(f"Cannot read artifact '{filename}': {e}", context=context) from e
    if actual != expected:
        raise ChecksumMismatchError(
            f"Checksum mismatch for '{filename}': expected {expected}, got {actual}",
            context={**context, "expected": expected, "actual": actual},
        )

    logger.debug(f"{filename}: {rule.algorithm} {actual} OK")
    return actual
