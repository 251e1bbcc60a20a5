"""
Mutation-and-wait orchestration.

Every resource goes through ``PENDING_MUTATION -> MUTATED -> CONFIRMED | TIMED_OUT``.
All resources of a call are mutated first (fail-fast, no rollback); waiting variants
then poll the store under one shared timeout/interval budget, re-checking the whole
batch from the first resource on every tick.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sawchain.models.options import WaitWindow
from sawchain.models.resource import KubeObject, ResourceKey
from sawchain.repositories.store import Document, NotFoundError, ResourceStore, StoreError
from sawchain.services.diagnostics import ConsistencyTimeoutError, StoreMutationError
from sawchain.services.state_copier import copy_document
from sawchain.telemetry import TelemetryClient

LOGGER = logging.getLogger("sawchain.orchestrator")


class Verb(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class Condition(str, Enum):
    EXISTS = "exists"
    MIN_VERSION = "min-version"
    ABSENT = "absent"


@dataclass
class Target:
    """One resource of a call: the document to send and, optionally, its handle.

    The handle is refreshed in place from mutation responses and successful reads.
    """

    document: Document
    handle: KubeObject | None = None

    @property
    def key(self) -> ResourceKey:
        return ResourceKey.from_document(self.document)

    @classmethod
    def from_handle(cls, handle: KubeObject) -> Target:
        return cls(document=handle.to_document(), handle=handle)


@dataclass
class Expectation:
    target: Target
    condition: Condition
    min_version: str = ""
    observed: Document | None = None


@dataclass
class Observation:
    satisfied: bool
    key: ResourceKey | None = None
    detail: str = ""
    read_error: StoreError | None = None


def version_at_least(observed: str, minimum: str) -> bool:
    """Compare resource versions numerically when both are integers."""
    if not minimum:
        return True
    if observed.isdigit() and minimum.isdigit():
        return int(observed) >= int(minimum)
    return observed >= minimum


@dataclass
class WaitDescriptor:
    verb: Verb
    window: WaitWindow
    expectations: list[Expectation] = field(default_factory=list)

    def evaluate(self, store: ResourceStore, ctx: threading.Event | None) -> Observation:
        for expectation in self.expectations:
            observation = _check(store, ctx, expectation)
            if not observation.satisfied:
                return observation
        return Observation(satisfied=True)

    def observed_documents(self) -> list[Document | None]:
        return [expectation.observed for expectation in self.expectations]


def _check(
    store: ResourceStore, ctx: threading.Event | None, expectation: Expectation
) -> Observation:
    target = expectation.target
    key = target.key
    try:
        document = store.get(ctx, key)
    except NotFoundError as exc:
        if expectation.condition is Condition.ABSENT:
            expectation.observed = None
            return Observation(satisfied=True)
        return Observation(False, key, f"{key}: {exc}", exc)
    except StoreError as exc:
        return Observation(False, key, f"{key}: {exc}", exc)

    expectation.observed = document
    if target.handle is not None:
        copy_document(document, target.handle)
    if expectation.condition is Condition.ABSENT:
        return Observation(False, key, f"{key}: expected resource not to be found")
    if expectation.condition is Condition.MIN_VERSION:
        actual = str((document.get("metadata") or {}).get("resourceVersion") or "")
        if not version_at_least(actual, expectation.min_version):
            return Observation(
                False,
                key,
                (
                    f"{key}: insufficient resource version: expected at least "
                    f"{expectation.min_version} but got {actual}"
                ),
            )
    return Observation(satisfied=True)


class MutationOrchestrator:
    def __init__(
        self,
        store: ResourceStore,
        *,
        telemetry: TelemetryClient | None = None,
        sleep: Callable[[float], Any] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()
        self._sleep = sleep
        self._monotonic = monotonic

    def mutate(
        self,
        ctx: threading.Event | None,
        verb: Verb,
        targets: Sequence[Target],
        *,
        source: str,
        merge_patch: bool = False,
    ) -> list[Document | None]:
        """Apply ``verb`` to every target in order, stopping at the first failure."""
        responses: list[Document | None] = []
        for target in targets:
            key = target.key
            try:
                response = self._apply(ctx, verb, target, merge_patch=merge_patch)
            except StoreError as exc:
                LOGGER.warning(
                    "mutation failed verb=%s source=%s resource=%s reason=%s error=%s",
                    verb.value,
                    source,
                    key,
                    exc.reason,
                    exc,
                )
                self._telemetry.emit(
                    "sawchain.mutation.failed",
                    verb=verb.value,
                    source=source,
                    kind=key.kind,
                    namespace=key.namespace,
                    name=key.name,
                    reason=exc.reason,
                )
                raise StoreMutationError(
                    verb=verb.value, source=source, key=key, cause=exc
                ) from exc

            LOGGER.debug(
                "mutation applied verb=%s source=%s resource=%s resource_version=%s",
                verb.value,
                source,
                key,
                _resource_version(response),
            )
            self._telemetry.emit(
                "sawchain.mutation.applied",
                verb=verb.value,
                source=source,
                kind=key.kind,
                namespace=key.namespace,
                name=key.name,
            )
            if response is not None and target.handle is not None:
                copy_document(response, target.handle)
            responses.append(response)
        return responses

    def expect(
        self,
        verb: Verb,
        window: WaitWindow,
        targets: Sequence[Target],
        responses: Sequence[Document | None],
    ) -> WaitDescriptor:
        """Build the confirmation predicate for targets that were just mutated."""
        descriptor = WaitDescriptor(verb=verb, window=window)
        for target, response in zip(targets, responses, strict=True):
            if verb is Verb.DELETE:
                descriptor.expectations.append(Expectation(target, Condition.ABSENT))
            elif verb is Verb.UPDATE:
                descriptor.expectations.append(
                    Expectation(
                        target, Condition.MIN_VERSION, min_version=_resource_version(response)
                    )
                )
            else:
                descriptor.expectations.append(Expectation(target, Condition.EXISTS))
        return descriptor

    def wait(self, ctx: threading.Event | None, descriptor: WaitDescriptor) -> list[Document | None]:
        """Poll until the whole batch is observable or the timeout elapses."""
        started = self._monotonic()
        deadline = started + descriptor.window.timeout.total_seconds()
        interval = descriptor.window.interval.total_seconds()
        attempts = 0
        while True:
            attempts += 1
            observation = descriptor.evaluate(self._store, ctx)
            now = self._monotonic()
            if observation.satisfied:
                LOGGER.info(
                    "%s confirmed resources=%s attempts=%s elapsed_seconds=%.3f",
                    descriptor.verb.value,
                    len(descriptor.expectations),
                    attempts,
                    now - started,
                )
                self._telemetry.emit(
                    "sawchain.wait.confirmed",
                    verb=descriptor.verb.value,
                    resources=len(descriptor.expectations),
                    attempts=attempts,
                    elapsed_seconds=round(now - started, 3),
                )
                return descriptor.observed_documents()
            if now >= deadline:
                break
            LOGGER.debug(
                "%s not yet reflected attempt=%s detail=%s",
                descriptor.verb.value,
                attempts,
                observation.detail,
            )
            self._sleep(interval)

        error = ConsistencyTimeoutError(
            verb=descriptor.verb.value,
            key=observation.key,
            detail=observation.detail,
            last_read_error=observation.read_error,
            elapsed_seconds=now - started,
            attempts=attempts,
        )
        LOGGER.warning(
            "%s not reflected within timeout attempts=%s elapsed_seconds=%.3f detail=%s",
            descriptor.verb.value,
            attempts,
            now - started,
            observation.detail,
        )
        self._telemetry.emit(
            "sawchain.wait.timed_out",
            verb=descriptor.verb.value,
            attempts=attempts,
            elapsed_seconds=round(now - started, 3),
            store_unreachable=error.store_unreachable,
        )
        raise error

    def _apply(
        self,
        ctx: threading.Event | None,
        verb: Verb,
        target: Target,
        *,
        merge_patch: bool,
    ) -> Document | None:
        if verb is Verb.CREATE:
            return self._store.create(ctx, target.document)
        if verb is Verb.UPDATE:
            if merge_patch:
                return self._store.patch(ctx, target.key, target.document)
            return self._store.update(ctx, target.document)
        self._store.delete(ctx, target.key)
        return None


def _resource_version(document: Document | None) -> str:
    if not document:
        return ""
    return str((document.get("metadata") or {}).get("resourceVersion") or "")
