from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from types import MappingProxyType
from typing import Any, Union

from sawchain.models.resource import KubeObject


class Slot(str, Enum):
    TEMPLATE = "template"
    OBJECT = "object"
    OBJECTS = "objects"
    BINDINGS = "bindings"
    TIMEOUT = "timeout"
    INTERVAL = "interval"


@dataclass(frozen=True)
class TemplateArgument:
    source: str


@dataclass(frozen=True)
class BindingsArgument:
    values: Mapping[str, Any]


@dataclass(frozen=True)
class ObjectArgument:
    obj: KubeObject


@dataclass(frozen=True)
class ObjectsArgument:
    objs: tuple[KubeObject, ...]


@dataclass(frozen=True)
class DurationArgument:
    """Positional duration: the first fills Timeout, the second Interval."""

    value: timedelta


@dataclass(frozen=True)
class TimeoutArgument:
    value: timedelta


@dataclass(frozen=True)
class IntervalArgument:
    value: timedelta


CallArgument = Union[
    TemplateArgument,
    BindingsArgument,
    ObjectArgument,
    ObjectsArgument,
    DurationArgument,
    TimeoutArgument,
    IntervalArgument,
]


@dataclass(frozen=True)
class OperationProfile:
    name: str
    accepted: frozenset[Slot]
    required_one_of: tuple[Slot, ...] = ()
    requires_durations: bool = False

    def accepts(self, slot: Slot) -> bool:
        return slot in self.accepted


_RESOURCE_SLOTS = frozenset({Slot.TEMPLATE, Slot.OBJECT, Slot.OBJECTS, Slot.BINDINGS})
_DURATION_SLOTS = frozenset({Slot.TIMEOUT, Slot.INTERVAL})

NEW = OperationProfile(
    name="new",
    accepted=frozenset({Slot.BINDINGS}) | _DURATION_SLOTS,
    requires_durations=True,
)
MUTATE = OperationProfile(
    name="mutate",
    accepted=_RESOURCE_SLOTS,
    required_one_of=(Slot.TEMPLATE, Slot.OBJECT, Slot.OBJECTS),
)
MUTATE_AND_WAIT = OperationProfile(
    name="mutate-and-wait",
    accepted=_RESOURCE_SLOTS | _DURATION_SLOTS,
    required_one_of=(Slot.TEMPLATE, Slot.OBJECT, Slot.OBJECTS),
    requires_durations=True,
)
GET = OperationProfile(
    name="get",
    accepted=_RESOURCE_SLOTS,
    required_one_of=(Slot.TEMPLATE, Slot.OBJECT, Slot.OBJECTS),
)
FETCH_SINGLE = OperationProfile(
    name="fetch-single",
    accepted=frozenset({Slot.TEMPLATE, Slot.OBJECT, Slot.BINDINGS}),
    required_one_of=(Slot.TEMPLATE, Slot.OBJECT),
)
FETCH_MULTIPLE = OperationProfile(
    name="fetch-multiple",
    accepted=frozenset({Slot.TEMPLATE, Slot.OBJECTS, Slot.BINDINGS}),
    required_one_of=(Slot.TEMPLATE, Slot.OBJECTS),
)
CHECK = OperationProfile(
    name="check",
    accepted=_RESOURCE_SLOTS,
    required_one_of=(Slot.TEMPLATE,),
)
RENDER_SINGLE = OperationProfile(
    name="render-single",
    accepted=frozenset({Slot.TEMPLATE, Slot.OBJECT, Slot.BINDINGS}),
    required_one_of=(Slot.TEMPLATE,),
)
RENDER_MULTIPLE = OperationProfile(
    name="render-multiple",
    accepted=frozenset({Slot.TEMPLATE, Slot.OBJECTS, Slot.BINDINGS}),
    required_one_of=(Slot.TEMPLATE,),
)


def _frozen_bindings(values: Mapping[str, Any] | None = None) -> Mapping[str, Any]:
    return MappingProxyType(dict(values or {}))


@dataclass(frozen=True)
class Defaults:
    """Instance-level defaults owned by one Sawchain instance."""

    bindings: Mapping[str, Any] = field(default_factory=_frozen_bindings)
    timeout: timedelta | None = None
    interval: timedelta | None = None


@dataclass(frozen=True)
class Options:
    template: str | None = None
    bindings: Mapping[str, Any] = field(default_factory=_frozen_bindings)
    obj: KubeObject | None = None
    objs: tuple[KubeObject, ...] | None = None
    timeout: timedelta | None = None
    interval: timedelta | None = None

    def handles(self) -> tuple[KubeObject, ...]:
        if self.obj is not None:
            return (self.obj,)
        return self.objs or ()


@dataclass(frozen=True)
class WaitWindow:
    timeout: timedelta
    interval: timedelta

    def __post_init__(self) -> None:
        if self.interval <= timedelta(0):
            raise ValueError(f"interval must be positive; got {self.interval}")
        if self.timeout <= self.interval:
            raise ValueError(
                f"timeout ({self.timeout}) must be greater than interval ({self.interval})"
            )
