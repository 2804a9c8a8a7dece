"""Tests for checksum manifests and verification."""

import hashlib
import tempfile
from pathlib import Path

import pytest
from kube_components import ChecksumMismatchError
from kube_components import ChecksumRule
from kube_components import expected_digest
from kube_components import file_digest
from kube_components import verify_artifact
from pydantic import ValidationError

PAYLOAD = b"\x7fELF fake runc binary"
DIGEST = hashlib.sha256(PAYLOAD).hexdigest()
OTHER = hashlib.sha256(b"something else").hexdigest()


def test_manifest_picks_exact_filename():
    manifest = f"{OTHER}  runc.arm64\n{DIGEST}  runc.amd64\n{OTHER}  runc.amd64.asc\n"

    assert expected_digest(ChecksumRule(kind="manifest"), manifest, "runc.amd64") == DIGEST


def test_manifest_binary_mode_marker():
    manifest = f"{DIGEST} *runc.amd64\n"

    assert expected_digest(ChecksumRule(kind="manifest"), manifest, "runc.amd64") == DIGEST


def test_manifest_missing_entry():
    manifest = f"{OTHER}  runc.arm64\n"

    assert expected_digest(ChecksumRule(kind="manifest"), manifest, "runc.amd64") is None


def test_single_hash_ignores_filename():
    assert expected_digest(ChecksumRule(kind="single"), f"{DIGEST.upper()}\n", "kubelet") == DIGEST
    assert expected_digest(ChecksumRule(kind="single"), f"{DIGEST}  -\n", "kubelet") == DIGEST
    assert expected_digest(ChecksumRule(kind="single"), "\n\n", "kubelet") is None


def test_file_digest():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "blob"
        path.write_bytes(PAYLOAD)

        assert file_digest(path) == DIGEST
        assert file_digest(path, "sha512") == hashlib.sha512(PAYLOAD).hexdigest()


def test_verify_artifact_ok():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "runc.amd64"
        path.write_bytes(PAYLOAD)

        assert verify_artifact(path, f"{DIGEST}  runc.amd64\n", ChecksumRule(), "runc.amd64") == DIGEST


def test_verify_artifact_mismatch():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "runc.amd64"
        path.write_bytes(b"tampered")

        with pytest.raises(ChecksumMismatchError, match="Checksum mismatch") as exc_info:
            verify_artifact(path, f"{DIGEST}  runc.amd64\n", ChecksumRule(), "runc.amd64", context={"component": "runc"})

        assert exc_info.value.stage == "checksum-mismatch"
        assert exc_info.value.component == "runc"
        assert exc_info.value.context["expected"] == DIGEST


def test_verify_artifact_other_file_ok_does_not_mask_mismatch():
    """Another file verifying in the same manifest must not pass ours."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "containerd-1.7.19-linux-amd64.tar.gz"
        path.write_bytes(b"corrupted archive")
        manifest = f"{DIGEST}  containerd-1.7.19-linux-amd64.tar.gz\n{hashlib.sha256(b'ok').hexdigest()}  other.tar.gz\n"

        with pytest.raises(ChecksumMismatchError):
            verify_artifact(path, manifest, ChecksumRule(), path.name)


def test_verify_artifact_missing_entry():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "etcd.tar.gz"
        path.write_bytes(PAYLOAD)

        with pytest.raises(ChecksumMismatchError, match="No checksum entry"):
            verify_artifact(path, f"{DIGEST}  something-else.tar.gz\n", ChecksumRule(), path.name)


def test_verify_artifact_malformed_digest():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "kubelet"
        path.write_bytes(PAYLOAD)

        with pytest.raises(ChecksumMismatchError, match="Malformed"):
            verify_artifact(path, "<html>404 Not Found</html>\n", ChecksumRule(kind="single"), "kubelet")


def test_verify_artifact_unreadable_file():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "kubectl"
        path.mkdir()

        with pytest.raises(ChecksumMismatchError, match="Cannot read artifact") as exc_info:
            verify_artifact(path, f"{DIGEST}  kubectl\n", ChecksumRule(), "kubectl", context={"component": "kubectl"})

        assert exc_info.value.stage == "checksum-mismatch"
        assert exc_info.value.component == "kubectl"


def test_rule_rejects_unknown_algorithm():
    with pytest.raises(ValidationError, match="unsupported digest algorithm"):
        ChecksumRule(algorithm="crc32")
