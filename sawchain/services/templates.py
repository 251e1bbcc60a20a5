"""
Template materialization: loading, sanitising and rendering resource templates.

A template is a multi-document YAML manifest. String values written wholly as
``(expression)`` are evaluated against the call's bindings, e.g.::

    metadata:
      name: (concat($prefix, '-cm'))
      namespace: ($namespace)

Supported expressions are binding references (``$name`` and ``$name.field.path``),
quoted string literals, JSON scalars, list literals and the ``concat``, ``join`` and
``to_string`` functions.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from sawchain.services.diagnostics import InvalidTemplateError

_REFERENCE = re.compile(r"^\$([A-Za-z_][A-Za-z0-9_]*)((?:\.[A-Za-z_][A-Za-z0-9_-]*)*)$")
_FUNCTION_CALL = re.compile(r"^([a-z_]+)\((.*)\)$", re.DOTALL)
_IDENTITY_FIELDS: tuple[str, ...] = ("apiVersion", "kind")


def load_template(source: str) -> str:
    """Return template content from a file path or the inline string itself."""
    path = Path(source)
    try:
        is_file = "\n" not in source and path.is_file()
    except OSError:
        is_file = False
    if not is_file:
        return source
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise InvalidTemplateError(f"failed to read template file: {exc}", kind="syntax") from exc


def deindent(text: str) -> str:
    lines = [line for line in text.splitlines() if line.strip()]
    if not lines:
        return ""
    prefixes = [line[: len(line) - len(line.lstrip())] for line in lines]
    common = prefixes[0]
    for prefix in prefixes[1:]:
        size = 0
        while size < min(len(common), len(prefix)) and common[size] == prefix[size]:
            size += 1
        common = common[:size]
    return "\n".join(line[len(common) :] for line in lines)


def sanitize_template(text: str) -> str:
    """De-indent the template and prune empty documents."""
    try:
        documents = [
            document for document in yaml.safe_load_all(deindent(text)) if document is not None
        ]
    except yaml.YAMLError as exc:
        raise InvalidTemplateError(f"failed to parse template: {exc}", kind="syntax") from exc
    return "\n---\n".join(
        yaml.safe_dump(document, sort_keys=False, default_flow_style=False).strip()
        for document in documents
    )


def render_template(
    text: str, bindings: Mapping[str, Any], *, require_name: bool = True
) -> list[dict[str, Any]]:
    """Render every document of a sanitised template against ``bindings``."""
    try:
        parsed = [document for document in yaml.safe_load_all(text) if document is not None]
    except yaml.YAMLError as exc:
        raise InvalidTemplateError(f"failed to parse template: {exc}", kind="syntax") from exc
    if not parsed:
        raise InvalidTemplateError(
            "template contains no resource documents", kind="wrong-document-count"
        )

    rendered: list[dict[str, Any]] = []
    for index, document in enumerate(parsed, start=1):
        if not isinstance(document, dict):
            raise InvalidTemplateError(
                f"document #{index} is not a mapping ({type(document).__name__}); if using a "
                "file, ensure the file exists and the path is correct",
                kind="invalid-document",
            )
        result = _render_node(document, bindings)
        _require_identity(result, index, require_name=require_name)
        rendered.append(result)
    return rendered


def render_single(
    text: str, bindings: Mapping[str, Any], *, require_name: bool = True
) -> dict[str, Any]:
    rendered = render_template(text, bindings, require_name=require_name)
    if len(rendered) != 1:
        raise InvalidTemplateError(
            f"expected template to contain a single resource; found {len(rendered)}",
            kind="wrong-document-count",
        )
    return rendered[0]


def to_yaml(documents: list[dict[str, Any]]) -> str:
    return "---\n".join(
        yaml.safe_dump(document, sort_keys=False, default_flow_style=False)
        for document in documents
    )


def _require_identity(document: Mapping[str, Any], index: int, *, require_name: bool) -> None:
    missing = [name for name in _IDENTITY_FIELDS if not document.get(name)]
    metadata = document.get("metadata")
    if require_name and (not isinstance(metadata, Mapping) or not metadata.get("name")):
        missing.append("metadata.name")
    if missing:
        raise InvalidTemplateError(
            f"document #{index} is missing required fields: {', '.join(missing)}",
            kind="invalid-document",
        )


def _render_node(node: Any, bindings: Mapping[str, Any]) -> Any:
    if isinstance(node, dict):
        return {key: _render_node(value, bindings) for key, value in node.items()}
    if isinstance(node, list):
        return [_render_node(item, bindings) for item in node]
    if isinstance(node, str):
        stripped = node.strip()
        if len(stripped) > 2 and stripped.startswith("(") and stripped.endswith(")"):
            return _evaluate(stripped[1:-1].strip(), bindings)
    return node


def _evaluate(expression: str, bindings: Mapping[str, Any]) -> Any:
    if len(expression) >= 2 and expression[0] == expression[-1] == "'":
        return expression[1:-1]

    reference = _REFERENCE.match(expression)
    if reference is not None:
        name, path = reference.group(1), reference.group(2)
        if name not in bindings:
            raise InvalidTemplateError(
                f"variable not defined: ${name}", kind="undefined-variable"
            )
        value = bindings[name]
        for segment in filter(None, path.split(".")):
            value = value.get(segment) if isinstance(value, Mapping) else None
        return value

    if expression.startswith("[") and expression.endswith("]"):
        return [_evaluate(item, bindings) for item in _split_arguments(expression[1:-1])]

    call = _FUNCTION_CALL.match(expression)
    if call is not None:
        arguments = [_evaluate(item, bindings) for item in _split_arguments(call.group(2))]
        return _call_function(call.group(1), arguments, expression)

    try:
        return json.loads(expression)
    except ValueError:
        raise InvalidTemplateError(
            f"unsupported template expression: ({expression})", kind="syntax"
        ) from None


def _call_function(name: str, arguments: list[Any], expression: str) -> Any:
    if name == "concat":
        return "".join(_to_string(argument) for argument in arguments)
    if name == "join" and len(arguments) == 2 and isinstance(arguments[1], list):
        return _to_string(arguments[0]).join(_to_string(item) for item in arguments[1])
    if name == "to_string" and len(arguments) == 1:
        return _to_string(arguments[0])
    raise InvalidTemplateError(
        f"unsupported template function call: ({expression})", kind="syntax"
    )


def _to_string(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)


def _split_arguments(raw: str) -> list[str]:
    arguments: list[str] = []
    depth = 0
    quoted = False
    current: list[str] = []
    for char in raw:
        if char == "'":
            quoted = not quoted
        elif not quoted and char in "([":
            depth += 1
        elif not quoted and char in ")]":
            depth -= 1
        elif not quoted and depth == 0 and char == ",":
            arguments.append("".join(current).strip())
            current = []
            continue
        current.append(char)
    tail = "".join(current).strip()
    if tail:
        arguments.append(tail)
    return arguments
