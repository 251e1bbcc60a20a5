from __future__ import annotations

import copy
import threading
import uuid
from collections.abc import Mapping
from datetime import UTC, datetime
from threading import Lock
from typing import Any

from sawchain.models.resource import ResourceKey
from sawchain.repositories.store import (
    AlreadyExistsError,
    ConflictError,
    Document,
    ListSelector,
    NotFoundError,
    ensure_not_cancelled,
)


def apply_merge_patch(target: Any, patch: Any) -> Any:
    """Apply an RFC 7386 JSON merge patch: nulls delete, omitted keys stay."""
    if not isinstance(patch, Mapping):
        return copy.deepcopy(patch)
    result = dict(target) if isinstance(target, Mapping) else {}
    for name, value in patch.items():
        if value is None:
            result.pop(name, None)
        else:
            result[name] = apply_merge_patch(result.get(name), value)
    return result


class InMemoryStore:
    """
    Thread-safe in-memory object store with Kubernetes-like semantics.

    Every write bumps a store-wide resourceVersion counter; updates carrying a
    stale resourceVersion are rejected with ``ConflictError``.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._objects: dict[ResourceKey, Document] = {}
        self._revision = 0

    def get(self, ctx: threading.Event | None, key: ResourceKey) -> Document:
        ensure_not_cancelled(ctx, key)
        with self._lock:
            stored = self._objects.get(key)
            if stored is None:
                raise NotFoundError(f"{key} not found", key=key)
            return copy.deepcopy(stored)

    def create(self, ctx: threading.Event | None, document: Mapping[str, Any]) -> Document:
        key = ResourceKey.from_document(document)
        ensure_not_cancelled(ctx, key)
        with self._lock:
            if key in self._objects:
                raise AlreadyExistsError(f"{key} already exists", key=key)
            stored = copy.deepcopy(dict(document))
            metadata = stored.setdefault("metadata", {})
            metadata["uid"] = str(uuid.uuid4())
            metadata["creationTimestamp"] = datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
            return self._store(key, stored)

    def update(self, ctx: threading.Event | None, document: Mapping[str, Any]) -> Document:
        key = ResourceKey.from_document(document)
        ensure_not_cancelled(ctx, key)
        with self._lock:
            current = self._objects.get(key)
            if current is None:
                raise NotFoundError(f"{key} not found", key=key)
            stored = copy.deepcopy(dict(document))
            metadata = stored.setdefault("metadata", {})
            expected_version = metadata.get("resourceVersion")
            current_version = current["metadata"]["resourceVersion"]
            if expected_version and expected_version != current_version:
                raise ConflictError(
                    f"{key} has been modified; expected resourceVersion "
                    f"{expected_version} but found {current_version}",
                    key=key,
                )
            metadata["uid"] = current["metadata"].get("uid")
            metadata["creationTimestamp"] = current["metadata"].get("creationTimestamp")
            return self._store(key, stored)

    def patch(
        self,
        ctx: threading.Event | None,
        key: ResourceKey,
        merge_patch: Mapping[str, Any],
    ) -> Document:
        ensure_not_cancelled(ctx, key)
        with self._lock:
            current = self._objects.get(key)
            if current is None:
                raise NotFoundError(f"{key} not found", key=key)
            patched = apply_merge_patch(current, merge_patch)
            patched.setdefault("metadata", {})
            for immutable in ("uid", "creationTimestamp", "name", "namespace"):
                if immutable in current["metadata"]:
                    patched["metadata"][immutable] = current["metadata"][immutable]
            return self._store(key, patched)

    def delete(self, ctx: threading.Event | None, key: ResourceKey) -> None:
        ensure_not_cancelled(ctx, key)
        with self._lock:
            if self._objects.pop(key, None) is None:
                raise NotFoundError(f"{key} not found", key=key)

    def list(self, ctx: threading.Event | None, selector: ListSelector) -> list[Document]:
        ensure_not_cancelled(ctx)
        with self._lock:
            return [
                copy.deepcopy(document)
                for _, document in sorted(
                    self._objects.items(),
                    key=lambda item: (item[0].namespace, item[0].name),
                )
                if selector.matches(document)
            ]

    def _store(self, key: ResourceKey, document: Document) -> Document:
        self._revision += 1
        document["metadata"]["resourceVersion"] = str(self._revision)
        self._objects[key] = document
        return copy.deepcopy(document)
