from __future__ import annotations

import json
import subprocess
from pathlib import Path
from typing import Any

import pytest

from sawchain.models.resource import ResourceKey
from sawchain.repositories import kubectl_store
from sawchain.repositories.kubectl_store import KubectlStore
from sawchain.repositories.store import (
    AlreadyExistsError,
    ListSelector,
    NotFoundError,
    StoreError,
    StoreUnavailableError,
)

_KEY = ResourceKey(api_version="apps/v1", kind="Deployment", namespace="default", name="web")


class _FakeRun:
    def __init__(self, *, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        self.calls: list[dict[str, Any]] = []
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr

    def __call__(self, command: list[str], **kwargs: Any) -> subprocess.CompletedProcess[str]:
        self.calls.append({"command": command, **kwargs})
        return subprocess.CompletedProcess(
            command, self.returncode, stdout=self.stdout, stderr=self.stderr
        )


def test_get_builds_typed_resource_command(monkeypatch: pytest.MonkeyPatch) -> None:
    fake_run = _FakeRun(stdout=json.dumps({"kind": "Deployment", "metadata": {"name": "web"}}))
    monkeypatch.setattr(kubectl_store.subprocess, "run", fake_run)
    store = KubectlStore(kubeconfig=Path("/tmp/kubeconfig"))

    document = store.get(None, _KEY)

    assert document["metadata"]["name"] == "web"
    assert fake_run.calls[0]["command"] == [
        "kubectl",
        "--kubeconfig=/tmp/kubeconfig",
        "get",
        "deployment.v1.apps",
        "web",
        "-n",
        "default",
        "-o",
        "json",
    ]


def test_create_sends_document_on_stdin(monkeypatch: pytest.MonkeyPatch) -> None:
    fake_run = _FakeRun(stdout="{}")
    monkeypatch.setattr(kubectl_store.subprocess, "run", fake_run)
    document = {"apiVersion": "v1", "kind": "ConfigMap", "metadata": {"name": "cm"}}

    KubectlStore().create(None, document)

    call = fake_run.calls[0]
    assert call["command"][1:] == ["create", "-f", "-", "-o", "json"]
    assert json.loads(call["input"]) == document


def test_patch_uses_merge_type(monkeypatch: pytest.MonkeyPatch) -> None:
    fake_run = _FakeRun(stdout="{}")
    monkeypatch.setattr(kubectl_store.subprocess, "run", fake_run)

    KubectlStore().patch(None, _KEY, {"spec": {"replicas": 2}})

    command = fake_run.calls[0]["command"]
    assert command[1:4] == ["patch", "deployment.v1.apps", "web"]
    assert command[command.index("--type") + 1] == "merge"
    assert json.loads(command[command.index("-p") + 1]) == {"spec": {"replicas": 2}}


def test_list_uses_namespace_and_label_selector(monkeypatch: pytest.MonkeyPatch) -> None:
    fake_run = _FakeRun(stdout=json.dumps({"items": [{"metadata": {"name": "a"}}]}))
    monkeypatch.setattr(kubectl_store.subprocess, "run", fake_run)

    items = KubectlStore().list(
        None, ListSelector(api_version="v1", kind="Pod", labels={"tier": "web", "app": "x"})
    )

    assert items == [{"metadata": {"name": "a"}}]
    assert fake_run.calls[0]["command"][1:] == [
        "get",
        "pod",
        "-o",
        "json",
        "--all-namespaces",
        "-l",
        "app=x,tier=web",
    ]


@pytest.mark.parametrize(
    ("stderr", "expected"),
    [
        ('Error from server (NotFound): deployments.apps "web" not found', NotFoundError),
        ('Error from server (AlreadyExists): deployments.apps "web" already exists', AlreadyExistsError),
        ("The connection to the server localhost:8080 was refused - connection refused", StoreUnavailableError),
        ("error: something else went wrong", StoreError),
        (
            'error: resource mapping not found for name: "web" namespace: "": no matches for kind "Widget"',
            StoreError,
        ),
    ],
)
def test_failures_are_classified(
    monkeypatch: pytest.MonkeyPatch, stderr: str, expected: type[StoreError]
) -> None:
    monkeypatch.setattr(kubectl_store.subprocess, "run", _FakeRun(returncode=1, stderr=stderr))

    with pytest.raises(expected) as excinfo:
        KubectlStore().delete(None, _KEY)

    assert type(excinfo.value) is expected
    assert excinfo.value.key == _KEY


def test_missing_binary_is_unavailable(monkeypatch: pytest.MonkeyPatch) -> None:
    def _raise(*_args: Any, **_kwargs: Any) -> None:
        raise FileNotFoundError("kubectl")

    monkeypatch.setattr(kubectl_store.subprocess, "run", _raise)

    with pytest.raises(StoreUnavailableError, match="kubectl binary not found"):
        KubectlStore().get(None, _KEY)


def test_timeout_is_unavailable(monkeypatch: pytest.MonkeyPatch) -> None:
    def _raise(command: list[str], **kwargs: Any) -> None:
        raise subprocess.TimeoutExpired(command, kwargs["timeout"])

    monkeypatch.setattr(kubectl_store.subprocess, "run", _raise)

    with pytest.raises(StoreUnavailableError, match="timed out after 5s"):
        KubectlStore(timeout_seconds=5).get(None, _KEY)
