"""Tests for the kube-components CLI."""

import hashlib
import json
import logging
import textwrap
from pathlib import Path

import pytest
from click.testing import CliRunner
from kube_components import CommandResult
from kube_components import cli as cli_module
from kube_components.cli import cli

REPO = "https://example.test/releases"
BINARY = b"demo version v2.0.1\n"


class MockFetcher:
    def __init__(self, artifacts: dict[str, bytes]):
        self.artifacts = artifacts
        self.requests: list[str] = []

    async def fetch(self, url: str, dest: Path) -> None:
        self.requests.append(url)
        if url not in self.artifacts:
            raise RuntimeError(f"404 Not Found: {url}")
        dest.write_bytes(self.artifacts[url])


class ScriptRunner:
    async def run(self, argv: list[str]) -> CommandResult:
        return CommandResult(returncode=0, stdout=Path(argv[0]).read_text())


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    logging.getLogger("kube_components").handlers.clear()


@pytest.fixture
def fetcher(monkeypatch) -> MockFetcher:
    digest = hashlib.sha256(BINARY).hexdigest()
    mock = MockFetcher(
        {
            f"{REPO}/v2.0.1/demo.amd64": BINARY,
            f"{REPO}/v2.0.1/SHA256SUMS": f"{digest}  demo.amd64\n".encode(),
        }
    )
    monkeypatch.setattr(cli_module, "RequestsFetcher", lambda: mock)
    monkeypatch.setattr(cli_module, "SubprocessRunner", ScriptRunner)
    return mock


def _config(tmp_path: Path, version: str = "v2.0.1") -> Path:
    config = tmp_path / "components.toml"
    config.write_text(
        textwrap.dedent(f"""\
            [components.demo]
            target_version = "{version}"
            repository = "{REPO}"
            binary_url = "{{repository}}/{{version}}/demo.{{arch}}"
            checksum_url = "{{repository}}/{{version}}/SHA256SUMS"
            install_path = "{tmp_path / 'bin' / 'demo'}"
        """)
    )
    return config


def _invoke(config: Path, *args: str):
    runner = CliRunner()
    return runner.invoke(cli, ["--no-site-config", "--config", str(config), *args], obj={})


class TestCLIGlobal:
    def test_help(self):
        result = CliRunner().invoke(cli, ["--help"], obj={})
        assert result.exit_code == 0
        assert "Install and update Kubernetes node binaries" in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"], obj={})
        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestEnsure:
    def test_install_then_up_to_date(self, tmp_path: Path, fetcher: MockFetcher):
        config = _config(tmp_path)
        ledger = tmp_path / "ledger.json"

        first = _invoke(config, "ensure", "demo", "--ledger", str(ledger))
        assert first.exit_code == 0, first.output
        assert "demo: installed 2.0.1 (was none)" in first.output
        assert (tmp_path / "bin" / "demo").read_bytes() == BINARY

        second = _invoke(config, "ensure", "demo", "--ledger", str(ledger))
        assert second.exit_code == 0
        assert "demo: up to date (2.0.1)" in second.output
        assert len(fetcher.requests) == 2

        data = json.loads(ledger.read_text())
        assert data["components"]["demo"]["outcome"] == "skipped"

    def test_failure_exits_nonzero(self, tmp_path: Path, fetcher: MockFetcher):
        config = _config(tmp_path, version="v9.9.9")

        result = _invoke(config, "ensure", "demo")

        assert result.exit_code == 1
        assert "demo: download-binary failed" in result.output

    def test_requires_names_or_all(self, tmp_path: Path, fetcher: MockFetcher):
        result = _invoke(_config(tmp_path), "ensure")

        assert result.exit_code == 2
        assert "--all" in result.output

    def test_unknown_component(self, tmp_path: Path, fetcher: MockFetcher):
        result = _invoke(_config(tmp_path), "ensure", "nope")

        assert result.exit_code == 1
        assert "Unknown component 'nope'" in result.output


class TestCheckAndList:
    def test_check_json(self, tmp_path: Path, fetcher: MockFetcher):
        config = _config(tmp_path)
        _invoke(config, "ensure", "demo")

        result = _invoke(config, "check", "demo", "--json")

        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert payload[0]["component"] == "demo"
        assert payload[0]["current_version"] == "2.0.1"
        assert payload[0]["up_to_date"] is True

    def test_check_text_missing(self, tmp_path: Path, fetcher: MockFetcher):
        result = _invoke(_config(tmp_path), "check", "demo")

        assert result.exit_code == 0
        assert "✗ demo: none (target 2.0.1)" in result.output

    def test_list_includes_bundled_and_config(self, tmp_path: Path):
        result = _invoke(_config(tmp_path), "list")

        assert result.exit_code == 0
        for name in ("runc", "containerd", "kubelet", "etcd", "kubectl", "crictl", "kubeadm", "demo"):
            assert name in result.output


class TestUnits:
    def test_writes_unit_files(self, tmp_path: Path):
        config = _config(tmp_path)
        out = tmp_path / "systemd"

        result = _invoke(config, "units", "demo", "runc", "--output-dir", str(out), "--arch", "arm64")

        assert result.exit_code == 0
        text = (out / "demo-install.service").read_text()
        assert f"--config {config.resolve()}" in text
        assert "ensure demo --arch arm64" in text
        assert (out / "runc-install.service").exists()
