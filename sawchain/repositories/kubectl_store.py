"""Resource store backed by the kubectl binary."""

from __future__ import annotations

import json
import logging
import subprocess
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from sawchain.models.resource import ResourceKey
from sawchain.repositories.store import (
    AlreadyExistsError,
    ConflictError,
    Document,
    ListSelector,
    NotFoundError,
    StoreError,
    StoreUnavailableError,
    ensure_not_cancelled,
)

LOGGER = logging.getLogger("sawchain.store.kubectl")

_UNAVAILABLE_MARKERS: tuple[str, ...] = (
    "unable to connect to the server",
    "connection refused",
    "i/o timeout",
    "no route to host",
    "the server is currently unable to handle the request",
)


class KubectlStore:
    """Thin wrapper around kubectl implementing the resource store contract."""

    def __init__(
        self,
        *,
        kubectl_binary: str = "kubectl",
        kubeconfig: Path | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        self.kubectl_binary = kubectl_binary
        self.kubeconfig_path = kubeconfig
        self.timeout_seconds = max(1.0, float(timeout_seconds))

    def get(self, ctx: threading.Event | None, key: ResourceKey) -> Document:
        ensure_not_cancelled(ctx, key)
        return self._run_json([*self._target_args(key), "-o", "json"], key=key)

    def create(self, ctx: threading.Event | None, document: Mapping[str, Any]) -> Document:
        key = ResourceKey.from_document(document)
        ensure_not_cancelled(ctx, key)
        return self._run_json(
            ["create", "-f", "-", "-o", "json"],
            input_data=json.dumps(document),
            key=key,
        )

    def update(self, ctx: threading.Event | None, document: Mapping[str, Any]) -> Document:
        key = ResourceKey.from_document(document)
        ensure_not_cancelled(ctx, key)
        return self._run_json(
            ["replace", "-f", "-", "-o", "json"],
            input_data=json.dumps(document),
            key=key,
        )

    def patch(
        self,
        ctx: threading.Event | None,
        key: ResourceKey,
        merge_patch: Mapping[str, Any],
    ) -> Document:
        ensure_not_cancelled(ctx, key)
        args = ["patch", *self._target_args(key)[1:], "--type", "merge"]
        args.extend(["-p", json.dumps(merge_patch), "-o", "json"])
        return self._run_json(args, key=key)

    def delete(self, ctx: threading.Event | None, key: ResourceKey) -> None:
        ensure_not_cancelled(ctx, key)
        self._run_kubectl(["delete", *self._target_args(key)[1:], "--wait=false"], key=key)

    def list(self, ctx: threading.Event | None, selector: ListSelector) -> list[Document]:
        ensure_not_cancelled(ctx)
        resource = _resource_type(selector.api_version, selector.kind)
        args = ["get", resource, "-o", "json"]
        if selector.namespace:
            args.extend(["-n", selector.namespace])
        else:
            args.append("--all-namespaces")
        if selector.labels:
            args.extend(["-l", ",".join(f"{k}={v}" for k, v in sorted(selector.labels.items()))])
        payload = self._run_json(args)
        return [item for item in payload.get("items", []) if isinstance(item, dict)]

    def _target_args(self, key: ResourceKey) -> list[str]:
        args = ["get", _resource_type(key.api_version, key.kind), key.name]
        if key.namespace:
            args.extend(["-n", key.namespace])
        return args

    def _run_json(
        self,
        args: list[str],
        *,
        input_data: str | None = None,
        key: ResourceKey | None = None,
    ) -> dict[str, Any]:
        output = self._run_kubectl(args, input_data=input_data, key=key)
        if not output:
            return {}
        try:
            payload = json.loads(output)
        except json.JSONDecodeError as exc:
            raise StoreError(f"kubectl returned invalid JSON: {exc}", key=key) from exc
        return payload if isinstance(payload, dict) else {}

    def _run_kubectl(
        self,
        args: list[str],
        *,
        input_data: str | None = None,
        key: ResourceKey | None = None,
    ) -> str:
        command = [self.kubectl_binary]
        if self.kubeconfig_path is not None:
            command.append(f"--kubeconfig={self.kubeconfig_path}")
        command.extend(args)
        LOGGER.debug("kubectl invocation args=%s", args[:3])
        try:
            result = subprocess.run(
                command,
                input=input_data,
                text=True,
                capture_output=True,
                check=False,
                timeout=self.timeout_seconds,
            )
        except FileNotFoundError as exc:
            raise StoreUnavailableError(
                f"kubectl binary not found: {self.kubectl_binary}", key=key
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise StoreUnavailableError(
                f"kubectl timed out after {self.timeout_seconds:g}s", key=key
            ) from exc
        if result.returncode != 0:
            raise _classify_failure(result.stderr.strip() or "kubectl command failed", key)
        return result.stdout.strip()


def _resource_type(api_version: str, kind: str) -> str:
    resource = kind.lower()
    if "/" in api_version:
        group, version = api_version.split("/", 1)
        return f"{resource}.{version}.{group}"
    return resource


def _classify_failure(message: str, key: ResourceKey | None) -> StoreError:
    if "(NotFound)" in message:
        return NotFoundError(message, key=key)
    if "(AlreadyExists)" in message:
        return AlreadyExistsError(message, key=key)
    if "(Conflict)" in message:
        return ConflictError(message, key=key)
    lowered = message.lower()
    if any(marker in lowered for marker in _UNAVAILABLE_MARKERS):
        return StoreUnavailableError(message, key=key)
    return StoreError(message, key=key)
