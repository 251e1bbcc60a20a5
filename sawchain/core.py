"""
The Sawchain facade: resource lifecycle helpers for tests.

Every operation takes a flat, order-independent argument list (template text or
path, resource handles, binding maps, timeout/interval durations) plus an optional
``ctx`` cancellation event::

    sc = Sawchain(store, {"namespace": "default"}, "10s", "1s")
    cm = ConfigMap()
    sc.create_and_wait(cm, '''
        apiVersion: v1
        kind: ConfigMap
        metadata:
          name: ($name)
          namespace: ($namespace)
        ''', {"name": "test-cm"})

Invalid input and unrecoverable errors fail the current test immediately. The
non-waiting ``create``, ``update``, ``delete`` and ``get`` return store failures
instead, for explicit handling by the caller.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from types import MappingProxyType
from typing import Any, NoReturn

from sawchain.config import SawchainSettings, load_settings
from sawchain.models.options import (
    CHECK,
    FETCH_MULTIPLE,
    FETCH_SINGLE,
    GET,
    MUTATE,
    MUTATE_AND_WAIT,
    NEW,
    RENDER_MULTIPLE,
    RENDER_SINGLE,
    Defaults,
    OperationProfile,
    Options,
    WaitWindow,
)
from sawchain.models.resource import KubeObject, ResourceKey, Scheme, default_scheme
from sawchain.repositories.store import (
    Document,
    ListSelector,
    NotFoundError,
    ResourceStore,
    StoreError,
)
from sawchain.services.arguments import require_wait_window, resolve_arguments
from sawchain.services.bindings import merge_bindings, normalize_bindings
from sawchain.services.diagnostics import (
    CheckMismatchError,
    DiagnosticsReporter,
    FileWriteError,
    InvalidArgumentsError,
    InvalidTemplateError,
    SawchainError,
    StoreMutationError,
    StoreReadError,
)
from sawchain.services.matchers import (
    ResourceMatcher,
    is_subset,
    status_condition_matcher,
    subset_mismatch,
    yaml_matcher,
)
from sawchain.services.orchestrator import MutationOrchestrator, Target, Verb
from sawchain.services.state_copier import copy_document, copy_documents, to_return_object
from sawchain.services.templates import (
    load_template,
    render_single,
    render_template,
    sanitize_template,
    to_yaml,
)
from sawchain.telemetry import TelemetryClient, build_telemetry_client

LOGGER = logging.getLogger("sawchain.core")


class Sawchain:
    def __init__(
        self,
        store: ResourceStore | None,
        *args: Any,
        settings: SawchainSettings | None = None,
        scheme: Scheme | None = None,
        reporter: DiagnosticsReporter | None = None,
        telemetry: TelemetryClient | None = None,
        sleep: Callable[[float], Any] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Args after ``store`` may be global bindings (maps) and a default timeout
        followed by a default interval; anything missing comes from ``settings``.
        ``store`` may be ``None`` for render-only use.
        """
        self._settings = settings if settings is not None else load_settings()
        self._telemetry = (
            telemetry
            if telemetry is not None
            else build_telemetry_client(
                enabled=self._settings.telemetry_enabled,
                sink=self._settings.telemetry_sink,
            )
        )
        self._reporter = (
            reporter if reporter is not None else DiagnosticsReporter(telemetry=self._telemetry)
        )
        self._store = store
        self._scheme = scheme if scheme is not None else default_scheme()
        self._sleep = sleep
        self._monotonic = monotonic

        base = Defaults(
            bindings=MappingProxyType(dict(self._settings.bindings)),
            timeout=self._settings.timeout,
            interval=self._settings.interval,
        )
        options = self._resolve(args, NEW, base)
        self._defaults = Defaults(
            bindings=MappingProxyType(dict(options.bindings)),
            timeout=options.timeout,
            interval=options.interval,
        )

    @property
    def defaults(self) -> Defaults:
        return self._defaults

    @property
    def scheme(self) -> Scheme:
        return self._scheme

    # Mutations.

    def create(self, *args: Any, ctx: threading.Event | None = None) -> StoreMutationError | None:
        """Create resources; returns the first store failure instead of failing the test."""
        return self._mutate(ctx, Verb.CREATE, args)

    def create_and_wait(self, *args: Any, ctx: threading.Event | None = None) -> None:
        """Create resources and wait until reads of every resource succeed."""
        self._mutate_and_wait(ctx, Verb.CREATE, args)

    def update(self, *args: Any, ctx: threading.Event | None = None) -> StoreMutationError | None:
        """
        Update resources; returns the first store failure instead of failing the test.

        Templates are applied as merge patches; handles are applied as full replacements.
        """
        return self._mutate(ctx, Verb.UPDATE, args)

    def update_and_wait(self, *args: Any, ctx: threading.Event | None = None) -> None:
        self._mutate_and_wait(ctx, Verb.UPDATE, args)

    def delete(self, *args: Any, ctx: threading.Event | None = None) -> StoreMutationError | None:
        """Delete resources; deleting an absent resource is reported, never ignored."""
        return self._mutate(ctx, Verb.DELETE, args)

    def delete_and_wait(self, *args: Any, ctx: threading.Event | None = None) -> None:
        self._mutate_and_wait(ctx, Verb.DELETE, args)

    # Reads.

    def get(self, *args: Any, ctx: threading.Event | None = None) -> StoreError | None:
        """Read resources into their handles; returns the first store failure."""
        options = self._resolve(args, GET)
        targets, _, destinations = self._prepare(options)
        documents: list[Document] = []
        for target in targets:
            try:
                document = self._require_store().get(ctx, target.key)
            except StoreError as exc:
                return exc
            if target.handle is not None:
                self._copy(document, target.handle)
            documents.append(document)
        self._save(documents, destinations)
        return None

    def fetch_single(self, *args: Any, ctx: threading.Event | None = None) -> KubeObject:
        options = self._resolve(args, FETCH_SINGLE)
        if options.template is None:
            (handle,) = options.handles()
            self._copy(self._read(ctx, handle.key, source="object"), handle)
            return handle

        document = self._render(options, single=True)[0]
        fetched = self._read(ctx, ResourceKey.from_document(document), source="template")
        if options.obj is not None:
            self._copy(fetched, options.obj)
            return options.obj
        return to_return_object(fetched, self._scheme)

    def fetch_multiple(self, *args: Any, ctx: threading.Event | None = None) -> list[KubeObject]:
        options = self._resolve(args, FETCH_MULTIPLE)
        if options.template is None:
            handles = options.handles()
            for handle in handles:
                self._copy(self._read(ctx, handle.key, source="object"), handle)
            return list(handles)

        fetched = [
            self._read(ctx, ResourceKey.from_document(document), source="template")
            for document in self._render(options)
        ]
        if options.objs is not None:
            self._save(fetched, options.objs)
            return list(options.objs)
        return [to_return_object(document, self._scheme) for document in fetched]

    def list(
        self,
        template: str,
        *bindings: Mapping[str, Any],
        ctx: threading.Event | None = None,
    ) -> list[KubeObject]:
        """Return every stored resource matching the single expectation in ``template``."""
        expected = self._render_expectation(template, bindings)
        try:
            candidates = self._require_store().list(ctx, _selector(expected))
        except NotFoundError:
            return []
        except StoreError as exc:
            self._fail(
                StoreReadError(
                    source="template",
                    key=ResourceKey.from_document(expected),
                    cause=exc,
                    verb="list",
                )
            )
        return [
            to_return_object(candidate, self._scheme)
            for candidate in candidates
            if is_subset(expected, candidate)
        ]

    # Checks and matchers.

    def check(self, *args: Any, ctx: threading.Event | None = None) -> list[KubeObject]:
        """
        Assert that every expectation in the template has a matching stored resource.

        Expectations are partial: only the fields written in the template are compared.
        A template naming its resource reads it directly; otherwise candidates are listed
        by apiVersion, kind, namespace and labels. The first match for each expectation
        is saved into the given handles, or returned as new ones.
        """
        options = self._resolve(args, CHECK)
        expectations = self._render(options, require_name=False)
        try:
            matches = [self._find_match(ctx, expected) for expected in expectations]
        except SawchainError as exc:
            self._fail(exc)
        handles = options.handles()
        if handles:
            self._save(matches, handles)
            return list(handles)
        return [to_return_object(match, self._scheme) for match in matches]

    def check_func(
        self, *args: Any, ctx: threading.Event | None = None
    ) -> Callable[[], SawchainError | None]:
        """
        Build a repeatable check for polling; each call returns the failure instead of
        failing the test. Arguments are validated and rendered once, up front.
        """
        options = self._resolve(args, CHECK)
        expectations = self._render(options, require_name=False)
        handles = options.handles()

        def _check() -> SawchainError | None:
            try:
                matches = [self._find_match(ctx, expected) for expected in expectations]
            except (CheckMismatchError, StoreReadError) as exc:
                return exc
            if handles:
                self._save(matches, handles)
            return None

        return _check

    def match_yaml(self, template: str, *bindings: Mapping[str, Any]) -> ResourceMatcher:
        """Matcher comparing a handle or document with a single-resource template."""
        return yaml_matcher(self._render_expectation(template, bindings))

    def have_status_condition(self, condition_type: str, expected_status: str) -> ResourceMatcher:
        if not condition_type or not expected_status:
            self._fail(
                InvalidArgumentsError("condition type and expected status must not be empty")
            )
        return status_condition_matcher(condition_type, expected_status)

    # Rendering.

    def render_single(self, *args: Any) -> KubeObject:
        options = self._resolve(args, RENDER_SINGLE)
        document = self._render(options, single=True, require_name=False)[0]
        if options.obj is not None:
            self._copy(document, options.obj)
            return options.obj
        return to_return_object(document, self._scheme)

    def render_multiple(self, *args: Any) -> list[KubeObject]:
        options = self._resolve(args, RENDER_MULTIPLE)
        documents = self._render(options, require_name=False)
        if options.objs is not None:
            self._save(documents, options.objs)
            return list(options.objs)
        return [to_return_object(document, self._scheme) for document in documents]

    def render_to_string(self, template: str, *bindings: Mapping[str, Any]) -> str:
        return to_yaml(self._render_documents(template, bindings))

    def render_to_file(self, path: str | Path, template: str, *bindings: Mapping[str, Any]) -> None:
        content = self.render_to_string(template, *bindings)
        try:
            Path(path).write_text(content, encoding="utf-8")
        except OSError as exc:
            self._fail(FileWriteError(f"{path}: {exc}"))
        LOGGER.debug("rendered template written path=%s", path)

    # Internals.

    def _mutate(
        self, ctx: threading.Event | None, verb: Verb, args: Sequence[Any]
    ) -> StoreMutationError | None:
        options = self._resolve(args, MUTATE)
        targets, source, destinations = self._prepare(options)
        orchestrator = self._orchestrator()
        try:
            responses = orchestrator.mutate(
                ctx, verb, targets, source=source, merge_patch=_merge_patch(verb, source)
            )
        except StoreMutationError as exc:
            return exc
        except SawchainError as exc:
            self._fail(exc)
        if verb is not Verb.DELETE:
            self._save(responses, destinations)
        return None

    def _mutate_and_wait(self, ctx: threading.Event | None, verb: Verb, args: Sequence[Any]) -> None:
        options = self._resolve(args, MUTATE_AND_WAIT)
        window = self._window(options)
        targets, source, destinations = self._prepare(options)
        orchestrator = self._orchestrator()
        try:
            responses = orchestrator.mutate(
                ctx, verb, targets, source=source, merge_patch=_merge_patch(verb, source)
            )
            observed = orchestrator.wait(ctx, orchestrator.expect(verb, window, targets, responses))
        except SawchainError as exc:
            self._fail(exc)
        if verb is not Verb.DELETE:
            self._save(observed, destinations)

    def _prepare(
        self, options: Options
    ) -> tuple[list[Target], str, tuple[KubeObject, ...]]:
        """Targets to mutate or read, their source label, and handles to save into."""
        if options.template is not None:
            targets = [Target(document=document) for document in self._render(options)]
            return targets, "template", options.handles()
        return [Target.from_handle(handle) for handle in options.handles()], "object", ()

    def _render(
        self, options: Options, *, single: bool = False, require_name: bool = True
    ) -> list[Document]:
        if options.template is None:
            self._fail(InvalidArgumentsError("required argument(s) not provided: Template (str)"))
        try:
            text = sanitize_template(load_template(options.template))
            bindings = normalize_bindings(options.bindings)
            if single:
                documents = [render_single(text, bindings, require_name=require_name)]
            else:
                documents = render_template(text, bindings, require_name=require_name)
            _check_arity(documents, options)
        except SawchainError as exc:
            self._fail(exc)
        LOGGER.debug("template rendered documents=%s", len(documents))
        return documents

    def _render_documents(
        self, template: str, bindings: Sequence[Mapping[str, Any]], *, single: bool = False
    ) -> list[Document]:
        try:
            if not isinstance(template, str):
                raise InvalidArgumentsError(
                    f"template must be a string; got {type(template).__name__}"
                )
            for binding_map in bindings:
                if not isinstance(binding_map, Mapping):
                    raise InvalidArgumentsError(
                        f"unexpected argument type: {type(binding_map).__name__}"
                    )
            text = sanitize_template(load_template(template))
            merged = normalize_bindings(merge_bindings(self._defaults.bindings, *bindings))
            if single:
                return [render_single(text, merged, require_name=False)]
            return render_template(text, merged, require_name=False)
        except SawchainError as exc:
            self._fail(exc)

    def _render_expectation(self, template: str, bindings: Sequence[Mapping[str, Any]]) -> Document:
        return self._render_documents(template, bindings, single=True)[0]

    def _find_match(self, ctx: threading.Event | None, expected: Document) -> Document:
        key = ResourceKey.from_document(expected)
        store = self._require_store()
        try:
            if key.name:
                candidates = [store.get(ctx, key)]
            else:
                candidates = store.list(ctx, _selector(expected))
        except NotFoundError as exc:
            raise CheckMismatchError("actual resource not found", key=key) from exc
        except StoreError as exc:
            raise StoreReadError(source="template", key=key, cause=exc, verb="check") from exc
        if not candidates:
            raise CheckMismatchError("no actual resource found", key=key)

        mismatches: list[str] = []
        for index, candidate in enumerate(candidates, start=1):
            mismatch = subset_mismatch(expected, candidate)
            if mismatch is None:
                LOGGER.debug("check matched resource=%s candidates=%s", key, len(candidates))
                return candidate
            mismatches.append(f"candidate #{index}: {mismatch}")
        raise CheckMismatchError(
            f"0 of {len(candidates)} candidates match expectation; {'; '.join(mismatches)}",
            key=key,
        )

    def _read(self, ctx: threading.Event | None, key: ResourceKey, *, source: str) -> Document:
        try:
            return self._require_store().get(ctx, key)
        except StoreError as exc:
            self._fail(StoreReadError(source=source, key=key, cause=exc))

    def _copy(self, document: Document, destination: KubeObject) -> None:
        try:
            copy_document(document, destination)
        except SawchainError as exc:
            self._fail(exc)

    def _save(
        self, documents: Sequence[Document | None], destinations: tuple[KubeObject, ...]
    ) -> None:
        if not destinations:
            return
        try:
            copy_documents([document for document in documents if document is not None], destinations)
        except SawchainError as exc:
            self._fail(exc)

    def _resolve(
        self, args: Sequence[Any], profile: OperationProfile, defaults: Defaults | None = None
    ) -> Options:
        try:
            return resolve_arguments(args, profile, defaults if defaults is not None else self._defaults)
        except SawchainError as exc:
            self._fail(exc)

    def _window(self, options: Options) -> WaitWindow:
        try:
            return require_wait_window(options)
        except SawchainError as exc:
            self._fail(exc)

    def _orchestrator(self) -> MutationOrchestrator:
        return MutationOrchestrator(
            self._require_store(),
            telemetry=self._telemetry,
            sleep=self._sleep,
            monotonic=self._monotonic,
        )

    def _require_store(self) -> ResourceStore:
        if self._store is None:
            self._fail(InvalidArgumentsError("operation requires a resource store; none configured"))
        return self._store

    def _fail(self, error: SawchainError) -> NoReturn:
        self._reporter.fail(error)


def _merge_patch(verb: Verb, source: str) -> bool:
    return verb is Verb.UPDATE and source == "template"


def _check_arity(documents: list[Document], options: Options) -> None:
    if options.obj is not None and len(documents) != 1:
        raise InvalidTemplateError(
            "single object insufficient for multi-resource template",
            kind="wrong-document-count",
        )
    if options.objs is not None and len(options.objs) != len(documents):
        raise InvalidTemplateError(
            f"objects length must match template resource count "
            f"(objects: {len(options.objs)}, resources: {len(documents)})",
            kind="wrong-document-count",
        )


def _selector(expected: Document) -> ListSelector:
    metadata = expected.get("metadata") or {}
    return ListSelector(
        api_version=str(expected.get("apiVersion")),
        kind=str(expected.get("kind")),
        namespace=str(metadata.get("namespace") or ""),
        labels=dict(metadata.get("labels") or {}),
    )
