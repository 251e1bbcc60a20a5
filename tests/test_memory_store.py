from __future__ import annotations

import threading
from typing import Any

import pytest

from sawchain.models.resource import ResourceKey
from sawchain.repositories.memory_store import InMemoryStore, apply_merge_patch
from sawchain.repositories.store import (
    AlreadyExistsError,
    ConflictError,
    ListSelector,
    NotFoundError,
    StoreCancelledError,
)


def _config_map(name: str, **labels: str) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": name, "namespace": "default", "labels": labels},
        "data": {"key": "value", "other": "kept"},
    }


_KEY = ResourceKey(api_version="v1", kind="ConfigMap", namespace="default", name="cm")


def test_create_stamps_metadata_and_get_returns_copy() -> None:
    store = InMemoryStore()

    created = store.create(None, _config_map("cm"))
    fetched = store.get(None, _KEY)

    assert created["metadata"]["resourceVersion"] == "1"
    assert created["metadata"]["uid"]
    assert fetched == created
    fetched["data"]["key"] = "mutated"
    assert store.get(None, _KEY)["data"]["key"] == "value"


def test_create_rejects_duplicates() -> None:
    store = InMemoryStore()
    store.create(None, _config_map("cm"))

    with pytest.raises(AlreadyExistsError):
        store.create(None, _config_map("cm"))


def test_update_is_full_replace_and_detects_conflicts() -> None:
    store = InMemoryStore()
    created = store.create(None, _config_map("cm"))

    replacement = _config_map("cm")
    replacement["data"] = {"key": "new"}
    replacement["metadata"]["resourceVersion"] = created["metadata"]["resourceVersion"]
    updated = store.update(None, replacement)

    assert updated["data"] == {"key": "new"}
    assert updated["metadata"]["uid"] == created["metadata"]["uid"]
    assert int(updated["metadata"]["resourceVersion"]) > int(created["metadata"]["resourceVersion"])

    with pytest.raises(ConflictError):
        store.update(None, replacement)


def test_patch_applies_merge_semantics() -> None:
    store = InMemoryStore()
    store.create(None, _config_map("cm"))

    patched = store.patch(None, _KEY, {"data": {"key": "patched", "other": None}})

    assert patched["data"] == {"key": "patched"}
    assert patched["metadata"]["name"] == "cm"


def test_delete_missing_resource_is_not_found() -> None:
    store = InMemoryStore()
    store.create(None, _config_map("cm"))

    store.delete(None, _KEY)

    with pytest.raises(NotFoundError):
        store.delete(None, _KEY)
    with pytest.raises(NotFoundError):
        store.get(None, _KEY)


def test_list_filters_by_selector() -> None:
    store = InMemoryStore()
    store.create(None, _config_map("b", app="web"))
    store.create(None, _config_map("a", app="web"))
    store.create(None, _config_map("c", app="db"))

    listed = store.list(
        None,
        ListSelector(api_version="v1", kind="ConfigMap", namespace="default", labels={"app": "web"}),
    )

    assert [document["metadata"]["name"] for document in listed] == ["a", "b"]


def test_cancelled_context_fails_calls() -> None:
    store = InMemoryStore()
    ctx = threading.Event()
    ctx.set()

    with pytest.raises(StoreCancelledError):
        store.get(ctx, _KEY)


def test_apply_merge_patch_handles_nested_values() -> None:
    target = {"spec": {"replicas": 1, "template": {"image": "a"}}, "status": {"ready": True}}

    result = apply_merge_patch(target, {"spec": {"template": {"image": "b"}}, "status": None})

    assert result == {"spec": {"replicas": 1, "template": {"image": "b"}}}
    assert target["status"] == {"ready": True}
