"""
Argument resolution for Sawchain operations.

Operations accept a flat, order-independent argument list. Each raw value is
coerced once into a ``CallArgument`` variant; the variants are then folded into an
``Options`` descriptor and checked against the operation's profile. Callers who
want to avoid shape-based coercion can pass the variants directly through the
builders below (``template``, ``bindings``, ``timeout``, ``interval``, ``objects``).
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import replace
from datetime import timedelta
from typing import Any

from sawchain.models.options import (
    BindingsArgument,
    CallArgument,
    Defaults,
    DurationArgument,
    IntervalArgument,
    ObjectArgument,
    ObjectsArgument,
    OperationProfile,
    Options,
    Slot,
    TemplateArgument,
    TimeoutArgument,
    WaitWindow,
)
from sawchain.models.resource import KubeObject
from sawchain.services.bindings import merge_bindings
from sawchain.services.diagnostics import InvalidArgumentsError

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS: dict[str, float] = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_SLOT_LABELS: dict[Slot, str] = {
    Slot.TEMPLATE: "Template (str)",
    Slot.OBJECT: "Object (KubeObject)",
    Slot.OBJECTS: "Objects (list[KubeObject])",
}


def parse_duration(value: str) -> timedelta | None:
    """Parse a Go-style duration such as ``"10s"``, ``"1m30s"`` or ``"500ms"``."""
    text = value.strip()
    if not text:
        return None
    if text == "0":
        return timedelta(0)
    sign = 1.0
    if text[0] in "+-":
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]
    position = 0
    total = 0.0
    while position < len(text):
        match = _DURATION_PART.match(text, position)
        if match is None:
            return None
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    if position == 0:
        return None
    return timedelta(seconds=sign * total)


def as_duration(value: Any) -> timedelta | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, timedelta):
        return value
    if isinstance(value, int | float):
        return timedelta(seconds=value)
    if isinstance(value, str):
        return parse_duration(value)
    return None


def _require_duration(value: Any, slot: Slot) -> timedelta:
    duration = as_duration(value)
    if duration is None:
        raise InvalidArgumentsError(f"invalid {slot.value} duration: {value!r}")
    return duration


def template(source: str) -> TemplateArgument:
    """Mark ``source`` (file path or inline YAML) as the template argument."""
    if not isinstance(source, str):
        raise InvalidArgumentsError(f"template must be a string; got {type(source).__name__}")
    return TemplateArgument(source=source)


def bindings(values: Mapping[str, Any] | None = None, **named: Any) -> BindingsArgument:
    return BindingsArgument(values=merge_bindings(values, named))


def timeout(value: timedelta | float | str) -> TimeoutArgument:
    return TimeoutArgument(value=_require_duration(value, Slot.TIMEOUT))


def interval(value: timedelta | float | str) -> IntervalArgument:
    return IntervalArgument(value=_require_duration(value, Slot.INTERVAL))


def objects(*handles: KubeObject) -> ObjectsArgument:
    return ObjectsArgument(objs=tuple(handles))


def as_call_argument(raw: Any, profile: OperationProfile) -> CallArgument:
    """Coerce one raw value into its argument variant."""
    if isinstance(
        raw,
        TemplateArgument
        | BindingsArgument
        | ObjectArgument
        | ObjectsArgument
        | DurationArgument
        | TimeoutArgument
        | IntervalArgument,
    ):
        return raw
    if isinstance(raw, KubeObject):
        return ObjectArgument(obj=raw)
    if isinstance(raw, list | tuple) and all(isinstance(item, KubeObject) for item in raw):
        return ObjectsArgument(objs=tuple(raw))
    if isinstance(raw, Mapping):
        return BindingsArgument(values=raw)
    accepts_durations = profile.accepts(Slot.TIMEOUT) or profile.accepts(Slot.INTERVAL)
    if isinstance(raw, str):
        duration = as_duration(raw) if accepts_durations else None
        if duration is not None:
            return DurationArgument(value=duration)
        return TemplateArgument(source=raw)
    duration = as_duration(raw)
    if duration is not None:
        return DurationArgument(value=duration)
    raise InvalidArgumentsError(f"unexpected argument type: {type(raw).__name__}")


class _OptionsBuilder:
    def __init__(self, profile: OperationProfile) -> None:
        self.profile = profile
        self.template: str | None = None
        self.bindings: list[Mapping[str, Any]] = []
        self.obj: KubeObject | None = None
        self.objs: tuple[KubeObject, ...] | None = None
        self.timeout: timedelta | None = None
        self.interval: timedelta | None = None

    def accept(self, argument: CallArgument) -> None:
        if isinstance(argument, TemplateArgument):
            self._check_accepted(Slot.TEMPLATE)
            if self.template is not None:
                raise InvalidArgumentsError("multiple template arguments provided")
            if not argument.source.strip():
                raise InvalidArgumentsError("template argument is empty")
            self.template = argument.source
        elif isinstance(argument, BindingsArgument):
            if not all(isinstance(name, str) for name in argument.values):
                raise InvalidArgumentsError("binding names must be strings")
            self.bindings.append(argument.values)
        elif isinstance(argument, ObjectArgument):
            self._check_accepted(Slot.OBJECT)
            if self.obj is not None:
                raise InvalidArgumentsError("multiple object arguments provided")
            if self.objs is not None:
                raise InvalidArgumentsError("object and objects arguments both provided")
            self.obj = argument.obj
        elif isinstance(argument, ObjectsArgument):
            self._check_accepted(Slot.OBJECTS)
            if self.objs is not None:
                raise InvalidArgumentsError("multiple objects arguments provided")
            if self.obj is not None:
                raise InvalidArgumentsError("object and objects arguments both provided")
            if not argument.objs:
                raise InvalidArgumentsError("objects argument is empty")
            self.objs = argument.objs
        elif isinstance(argument, TimeoutArgument):
            self._check_accepted(Slot.TIMEOUT)
            if self.timeout is not None:
                raise InvalidArgumentsError("multiple timeout arguments provided")
            self.timeout = self._positive(argument.value, Slot.TIMEOUT)
        elif isinstance(argument, IntervalArgument):
            self._check_accepted(Slot.INTERVAL)
            if self.interval is not None:
                raise InvalidArgumentsError("multiple interval arguments provided")
            self.interval = self._positive(argument.value, Slot.INTERVAL)
        else:
            self._check_accepted(Slot.TIMEOUT)
            if self.timeout is None:
                self.timeout = self._positive(argument.value, Slot.TIMEOUT)
            elif self.interval is None:
                self.interval = self._positive(argument.value, Slot.INTERVAL)
            else:
                raise InvalidArgumentsError("too many duration arguments provided")

    def build(self) -> Options:
        return Options(
            template=self.template,
            bindings=merge_bindings(*self.bindings),
            obj=self.obj,
            objs=self.objs,
            timeout=self.timeout,
            interval=self.interval,
        )

    def _check_accepted(self, slot: Slot) -> None:
        if not self.profile.accepts(slot):
            raise InvalidArgumentsError(
                f"{slot.value} arguments are not accepted by this operation"
            )

    @staticmethod
    def _positive(value: timedelta, slot: Slot) -> timedelta:
        if value <= timedelta(0):
            raise InvalidArgumentsError(f"{slot.value} must be positive; got {value}")
        return value


def resolve_arguments(
    args: Iterable[Any],
    profile: OperationProfile,
    defaults: Defaults | None = None,
) -> Options:
    """Resolve raw call arguments into validated options; performs no I/O."""
    builder = _OptionsBuilder(profile)
    for raw in args:
        builder.accept(as_call_argument(raw, profile))
    options = builder.build()
    _check_required(options, profile)
    if defaults is not None:
        options = apply_defaults(options, defaults)
    if profile.requires_durations:
        require_wait_window(options)
    return options


def apply_defaults(options: Options, defaults: Defaults) -> Options:
    return replace(
        options,
        bindings=merge_bindings(defaults.bindings, options.bindings),
        timeout=options.timeout if options.timeout is not None else defaults.timeout,
        interval=options.interval if options.interval is not None else defaults.interval,
    )


def require_wait_window(options: Options) -> WaitWindow:
    if options.timeout is None:
        raise InvalidArgumentsError("required argument(s) not provided: Timeout (str or timedelta)")
    if options.interval is None:
        raise InvalidArgumentsError(
            "required argument(s) not provided: Interval (str or timedelta)"
        )
    try:
        return WaitWindow(timeout=options.timeout, interval=options.interval)
    except ValueError as exc:
        raise InvalidArgumentsError(str(exc)) from exc


def _check_required(options: Options, profile: OperationProfile) -> None:
    if not profile.required_one_of:
        return
    present = {
        Slot.TEMPLATE: options.template is not None,
        Slot.OBJECT: options.obj is not None,
        Slot.OBJECTS: options.objs is not None,
    }
    if any(present.get(slot, False) for slot in profile.required_one_of):
        return
    labels = [_SLOT_LABELS[slot] for slot in profile.required_one_of]
    if len(labels) > 2:
        accepted = f"{', '.join(labels[:-1])}, or {labels[-1]}"
    else:
        accepted = " or ".join(labels)
    raise InvalidArgumentsError(f"required argument(s) not provided: {accepted}")
