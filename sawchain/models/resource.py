from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True)
class ResourceKey:
    api_version: str
    kind: str
    namespace: str
    name: str

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> ResourceKey:
        metadata = document.get("metadata") or {}
        return cls(
            api_version=str(document.get("apiVersion") or ""),
            kind=str(document.get("kind") or ""),
            namespace=str(metadata.get("namespace") or ""),
            name=str(metadata.get("name") or ""),
        )

    def __str__(self) -> str:
        kind = self.kind or "Unknown"
        location = f"{self.namespace}/{self.name}" if self.namespace else self.name
        return f"{kind} ({location})"


class ObjectMeta(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str = ""
    namespace: str = ""
    resource_version: str = Field(default="", alias="resourceVersion")
    uid: str = ""
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)


class KubeObject(BaseModel):
    """
    Resource handle: identity plus the last-known state of one remote object.

    The base class is schema-less (unknown top-level fields are kept verbatim).
    Typed subclasses set ``API_VERSION``/``KIND`` and declare their fields; only
    those support typed conversion from generic documents.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    API_VERSION: ClassVar[str] = ""
    KIND: ClassVar[str] = ""

    api_version: str = Field(default="", alias="apiVersion")
    kind: str = ""
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)

    def model_post_init(self, __context: Any) -> None:
        if self.API_VERSION and not self.api_version:
            self.api_version = self.API_VERSION
        if self.KIND and not self.kind:
            self.kind = self.KIND

    @classmethod
    def supports_typed_conversion(cls) -> bool:
        return bool(cls.API_VERSION and cls.KIND)

    @property
    def key(self) -> ResourceKey:
        return ResourceKey(
            api_version=self.api_version,
            kind=self.kind,
            namespace=self.metadata.namespace,
            name=self.metadata.name,
        )

    @property
    def resource_version(self) -> str:
        return self.metadata.resource_version

    def to_document(self) -> dict[str, Any]:
        document = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        document["metadata"] = {
            field_name: value
            for field_name, value in document.get("metadata", {}).items()
            if value not in ("", {}, [])
        }
        return document

    def refresh(self, document: Mapping[str, Any]) -> None:
        """Replace this handle's state in place with ``document``."""
        fresh = type(self).model_validate(copy.deepcopy(dict(document)))
        for field_name in type(self).model_fields:
            setattr(self, field_name, getattr(fresh, field_name))
        if self.__pydantic_extra__ is not None:
            self.__pydantic_extra__.clear()
            self.__pydantic_extra__.update(fresh.__pydantic_extra__ or {})
        object.__setattr__(self, "__pydantic_fields_set__", set(fresh.model_fields_set))


class Unstructured(KubeObject):
    """Generic handle accepting any resource document."""


class ConfigMap(KubeObject):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    API_VERSION: ClassVar[str] = "v1"
    KIND: ClassVar[str] = "ConfigMap"

    data: dict[str, str] | None = None
    binary_data: dict[str, str] | None = Field(default=None, alias="binaryData")
    immutable: bool | None = None


class Secret(KubeObject):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    API_VERSION: ClassVar[str] = "v1"
    KIND: ClassVar[str] = "Secret"

    type: str | None = None
    data: dict[str, str] | None = None
    string_data: dict[str, str] | None = Field(default=None, alias="stringData")
    immutable: bool | None = None


class Scheme:
    """Registry of typed handle classes keyed by apiVersion and kind."""

    def __init__(self, *types: type[KubeObject]) -> None:
        self._types: dict[tuple[str, str], type[KubeObject]] = {}
        for resource_type in types:
            self.register(resource_type)

    def register(self, resource_type: type[KubeObject]) -> None:
        if not resource_type.supports_typed_conversion():
            raise ValueError(f"{resource_type.__name__} does not declare API_VERSION and KIND.")
        self._types[(resource_type.API_VERSION, resource_type.KIND)] = resource_type

    def lookup(self, api_version: str, kind: str) -> type[KubeObject] | None:
        return self._types.get((api_version, kind))


def default_scheme() -> Scheme:
    return Scheme(ConfigMap, Secret)
