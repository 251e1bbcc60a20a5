from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from sawchain.models.resource import KubeObject, Scheme, Unstructured
from sawchain.services.diagnostics import StateCopyError

LOGGER = logging.getLogger("sawchain.state")


def copy_document(document: Mapping[str, Any], destination: KubeObject) -> None:
    """Copy a generic document into ``destination`` in place.

    Typed destinations only accept documents of their own apiVersion and kind.
    """
    destination_type = type(destination)
    if destination_type.supports_typed_conversion():
        source_type = (document.get("apiVersion"), document.get("kind"))
        expected_type = (destination_type.API_VERSION, destination_type.KIND)
        if source_type != expected_type:
            raise StateCopyError(
                f"destination object type {destination_type.__name__} "
                f"({'/'.join(expected_type)}) doesn't match source type "
                f"({'/'.join(str(part) for part in source_type)})"
            )
    try:
        destination.refresh(document)
    except ValidationError as exc:
        raise StateCopyError(
            f"failed to convert document to {destination_type.__name__}: {exc}"
        ) from exc


def copy_documents(documents: list[dict[str, Any]], destinations: tuple[KubeObject, ...]) -> None:
    for document, destination in zip(documents, destinations, strict=True):
        copy_document(document, destination)


def to_return_object(document: Mapping[str, Any], scheme: Scheme) -> KubeObject:
    """Build a typed handle when the scheme knows the kind, else a generic one."""
    resource_type = scheme.lookup(
        str(document.get("apiVersion") or ""), str(document.get("kind") or "")
    )
    if resource_type is not None:
        try:
            return resource_type.model_validate(dict(document))
        except ValidationError as exc:
            LOGGER.warning(
                "failed to convert return object to typed; returning unstructured type=%s error=%s",
                resource_type.__name__,
                exc,
            )
    return Unstructured.model_validate(dict(document))
