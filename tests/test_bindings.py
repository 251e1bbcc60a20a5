from __future__ import annotations

import math

import pytest

from sawchain.services.bindings import merge_bindings, normalize_bindings
from sawchain.services.diagnostics import InvalidTemplateError


def test_merge_bindings_later_maps_win() -> None:
    assert merge_bindings({"a": 1, "b": 2}, {"b": 3}, {"c": 4}) == {"a": 1, "b": 3, "c": 4}


def test_merge_bindings_is_shallow_and_side_effect_free() -> None:
    defaults = {"labels": {"team": "core"}, "namespace": "default"}
    override = {"labels": {"tier": "web"}}

    merged = merge_bindings(defaults, None, override)

    assert merged == {"labels": {"tier": "web"}, "namespace": "default"}
    assert defaults == {"labels": {"team": "core"}, "namespace": "default"}


def test_merge_bindings_without_maps_is_empty() -> None:
    assert merge_bindings() == {}


def test_normalize_bindings_round_trips_through_json() -> None:
    normalized = normalize_bindings({"replicas": 3, "ports": (80, 443), "enabled": True})

    assert normalized == {"replicas": 3, "ports": [80, 443], "enabled": True}


@pytest.mark.parametrize("value", [object(), math.nan, {1, 2}])
def test_normalize_bindings_rejects_unserializable_values(value: object) -> None:
    with pytest.raises(InvalidTemplateError, match="failed to normalize binding 'bad'") as excinfo:
        normalize_bindings({"bad": value})

    assert excinfo.value.kind == "bindings"
