from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from sawchain.cli import main

_TEMPLATE = """
apiVersion: v1
kind: ConfigMap
metadata:
  name: ($name)
  namespace: ($namespace)
data:
  replicas: (to_string($replicas))
"""


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def test_render_prints_manifest(runner: CliRunner) -> None:
    result = runner.invoke(
        main,
        ["render", _TEMPLATE, "-b", "name=demo", "-b", "namespace=e2e", "-b", "replicas=3"],
    )

    assert result.exit_code == 0, result.output
    assert "name: demo" in result.stdout
    assert "namespace: e2e" in result.stdout
    assert "replicas: '3'" in result.stdout


def test_render_merges_bindings_file_and_settings(
    runner: CliRunner, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("SAWCHAIN_BINDINGS", '{"namespace": "from-env", "replicas": 1}')
    bindings_file = tmp_path / "bindings.yaml"
    bindings_file.write_text("name: from-file\nreplicas: 2\n", encoding="utf-8")
    template_file = tmp_path / "configmap.yaml"
    template_file.write_text(_TEMPLATE, encoding="utf-8")
    output = tmp_path / "out" / "rendered.yaml"
    output.parent.mkdir()

    result = runner.invoke(
        main,
        [
            "render",
            str(template_file),
            "--bindings-file",
            str(bindings_file),
            "-b",
            "replicas=5",
            "-o",
            str(output),
        ],
    )

    assert result.exit_code == 0, result.output
    rendered = yaml.safe_load(output.read_text(encoding="utf-8"))
    assert rendered["metadata"] == {"name": "from-file", "namespace": "from-env"}
    assert rendered["data"] == {"replicas": "5"}


def test_render_reports_invalid_template(runner: CliRunner) -> None:
    result = runner.invoke(main, ["render", "kind: [unclosed"])

    assert result.exit_code == 1
    assert "[FAILED] invalid template/bindings" in result.output


def test_render_rejects_malformed_binding(runner: CliRunner) -> None:
    result = runner.invoke(main, ["render", _TEMPLATE, "-b", "no-separator"])

    assert result.exit_code == 2
    assert "expected KEY=VALUE" in result.output


def test_config_shows_resolved_settings(
    runner: CliRunner, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("SAWCHAIN_KUBECTL_BINARY", "kubectl-test")

    result = runner.invoke(main, ["config"])

    assert result.exit_code == 0, result.output
    assert "kubectl_binary" in result.stdout
    assert "kubectl-test" in result.stdout


def test_config_reports_invalid_configuration(
    runner: CliRunner, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("SAWCHAIN_INTERVAL_SECONDS", "10")

    result = runner.invoke(main, ["config"])

    assert result.exit_code == 1
    assert "invalid configuration" in result.output
