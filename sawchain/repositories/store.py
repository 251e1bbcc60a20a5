from __future__ import annotations

import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from sawchain.models.resource import ResourceKey

Document = dict[str, Any]


class StoreError(RuntimeError):
    """Failure reported by a resource store call."""

    reason = "Unknown"

    def __init__(self, message: str, *, key: ResourceKey | None = None) -> None:
        super().__init__(message)
        self.key = key


class NotFoundError(StoreError):
    reason = "NotFound"


class AlreadyExistsError(StoreError):
    reason = "AlreadyExists"


class ConflictError(StoreError):
    reason = "Conflict"


class StoreUnavailableError(StoreError):
    reason = "Unavailable"


class StoreCancelledError(StoreError):
    reason = "Cancelled"


@dataclass(frozen=True)
class ListSelector:
    api_version: str
    kind: str
    namespace: str = ""
    labels: Mapping[str, str] = field(default_factory=dict)

    def matches(self, document: Mapping[str, Any]) -> bool:
        if document.get("apiVersion") != self.api_version or document.get("kind") != self.kind:
            return False
        metadata = document.get("metadata") or {}
        if self.namespace and metadata.get("namespace", "") != self.namespace:
            return False
        labels = metadata.get("labels") or {}
        return all(labels.get(name) == value for name, value in self.labels.items())


class ResourceStore(Protocol):
    """Remote object store consumed by Sawchain operations.

    Every call takes the caller's cancellation context (``None`` means the call can
    not be cancelled). Mutating calls return the state stored by the server,
    including the new ``metadata.resourceVersion``.
    """

    def get(self, ctx: threading.Event | None, key: ResourceKey) -> Document:
        ...

    def create(self, ctx: threading.Event | None, document: Mapping[str, Any]) -> Document:
        ...

    def update(self, ctx: threading.Event | None, document: Mapping[str, Any]) -> Document:
        ...

    def patch(
        self,
        ctx: threading.Event | None,
        key: ResourceKey,
        merge_patch: Mapping[str, Any],
    ) -> Document:
        ...

    def delete(self, ctx: threading.Event | None, key: ResourceKey) -> None:
        ...

    def list(self, ctx: threading.Event | None, selector: ListSelector) -> list[Document]:
        ...


def ensure_not_cancelled(ctx: threading.Event | None, key: ResourceKey | None = None) -> None:
    if ctx is not None and ctx.is_set():
        raise StoreCancelledError("context cancelled", key=key)
