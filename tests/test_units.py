"""Tests for one-shot service unit rendering."""

import tempfile
from pathlib import Path

from kube_components import ComponentSpec
from kube_components import render_unit
from kube_components import write_units


def _spec(name: str) -> ComponentSpec:
    return ComponentSpec(
        name=name,
        target_version="v1.30.4",
        repository="https://dl.k8s.io",
        binary_url="{repository}/{version}/bin/linux/{arch}/" + name,
        checksum_url="{repository}/{version}/bin/linux/{arch}/" + name + ".sha256",
        install_path=f"/usr/local/bin/{name}",
        checksum={"kind": "single"},
    )


def test_render_unit_is_oneshot():
    text = render_unit(_spec("kubelet"))

    assert "Description=Install and update component kubelet\n" in text
    assert "After=network.target\n" in text
    assert "Wants=network-online.target\n" in text
    assert "Type=oneshot\n" in text
    assert "RemainAfterExit=yes\n" in text
    assert "SyslogIdentifier=kubelet-installer\n" in text
    assert "ExecStart=/usr/local/bin/kube-components --syslog ensure kubelet\n" in text
    assert text.rstrip().endswith("WantedBy=multi-user.target")


def test_render_unit_passes_config_arch_and_ledger():
    text = render_unit(
        _spec("kubeadm"),
        executable="/opt/kc/bin/kube-components",
        config_paths=[Path("/etc/kc/site.toml")],
        arch="arm64",
        ledger_path=Path("/var/lib/kc/ledger.json"),
    )

    assert (
        "ExecStart=/opt/kc/bin/kube-components --syslog --config /etc/kc/site.toml "
        "ensure kubeadm --arch arm64 --ledger /var/lib/kc/ledger.json\n"
    ) in text


def test_write_units_one_file_per_component():
    with tempfile.TemporaryDirectory() as tmpdir:
        out = Path(tmpdir) / "units"

        written = write_units([_spec("kubelet"), _spec("kubectl")], out)

        assert [p.name for p in written] == ["kubelet-install.service", "kubectl-install.service"]
        assert "ensure kubectl" in (out / "kubectl-install.service").read_text()
