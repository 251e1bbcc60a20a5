from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from sawchain.services.diagnostics import InvalidTemplateError


def merge_bindings(*binding_maps: Mapping[str, Any] | None) -> dict[str, Any]:
    """Shallow-merge binding maps in order; later maps win per key."""
    merged: dict[str, Any] = {}
    for binding_map in binding_maps:
        if binding_map:
            merged.update(binding_map)
    return merged


def normalize_bindings(bindings: Mapping[str, Any]) -> dict[str, Any]:
    normalized: dict[str, Any] = {}
    for name, value in bindings.items():
        try:
            normalized[name] = json.loads(json.dumps(value, allow_nan=False))
        except (TypeError, ValueError) as exc:
            raise InvalidTemplateError(
                f"failed to normalize binding {name!r}; ensure binding values are "
                f"JSON-serializable: {exc}",
                kind="bindings",
            ) from exc
    return normalized
