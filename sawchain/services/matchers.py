"""
Partial matching of resource state against rendered expectations.

Expected fields must be present with equal values; extra fields in the actual
document are allowed. Lists must have the same length and match item by item.
``ResourceMatcher`` compares equal to any handle or document it matches, so it
reads naturally in a plain ``assert``::

    assert config_map == sc.match_yaml(expected_yaml)
    assert deployment == sc.have_status_condition("Available", "True")
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from sawchain.models.resource import KubeObject
from sawchain.repositories.store import Document


def subset_mismatch(expected: Any, actual: Any, path: str = "") -> str | None:
    """Describe the first field where ``actual`` does not contain ``expected``."""
    where = path or "<root>"
    if isinstance(expected, Mapping):
        if not isinstance(actual, Mapping):
            return f"{where}: expected a mapping; got {type(actual).__name__}"
        for name, value in expected.items():
            child = f"{path}.{name}" if path else str(name)
            if name not in actual:
                return f"{child}: field not found"
            mismatch = subset_mismatch(value, actual[name], child)
            if mismatch is not None:
                return mismatch
        return None
    if isinstance(expected, list):
        if not isinstance(actual, list):
            return f"{where}: expected a list; got {type(actual).__name__}"
        if len(expected) != len(actual):
            return f"{where}: expected {len(expected)} items; got {len(actual)}"
        for index, (item, other) in enumerate(zip(expected, actual)):
            mismatch = subset_mismatch(item, other, f"{path}[{index}]")
            if mismatch is not None:
                return mismatch
        return None
    if expected != actual:
        return f"{where}: expected {expected!r}; got {actual!r}"
    return None


def is_subset(expected: Any, actual: Any) -> bool:
    return subset_mismatch(expected, actual) is None


def as_document(actual: Any) -> Document | None:
    if isinstance(actual, KubeObject):
        return actual.to_document()
    if isinstance(actual, Mapping):
        return dict(actual)
    return None


class ResourceMatcher:
    def __init__(self, description: str, check: Callable[[Document], str | None]) -> None:
        self.description = description
        self._check = check

    def mismatch(self, actual: Any) -> str | None:
        """Return why ``actual`` does not match, or ``None`` when it does."""
        document = as_document(actual)
        if document is None:
            return f"expected a resource handle or mapping; got {type(actual).__name__}"
        return self._check(document)

    def matches(self, actual: Any) -> bool:
        return self.mismatch(actual) is None

    def __eq__(self, actual: object) -> bool:
        return self.matches(actual)

    def __ne__(self, actual: object) -> bool:
        return not self.matches(actual)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"ResourceMatcher({self.description})"


def yaml_matcher(expected: Document) -> ResourceMatcher:
    return ResourceMatcher(
        f"{expected.get('kind') or 'resource'} matching template",
        lambda document: subset_mismatch(expected, document),
    )


def status_condition_matcher(condition_type: str, expected_status: str) -> ResourceMatcher:
    def _check(document: Document) -> str | None:
        conditions = (document.get("status") or {}).get("conditions") or []
        found = [
            condition
            for condition in conditions
            if isinstance(condition, Mapping) and condition.get("type") == condition_type
        ]
        if not found:
            return f"status.conditions: no condition of type {condition_type!r}"
        actual_status = found[0].get("status")
        if actual_status != expected_status:
            return (
                f"status.conditions[type={condition_type}].status: "
                f"expected {expected_status!r}; got {actual_status!r}"
            )
        return None

    return ResourceMatcher(f"status condition {condition_type}={expected_status}", _check)
