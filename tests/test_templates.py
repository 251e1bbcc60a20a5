from __future__ import annotations

from pathlib import Path

import pytest

from sawchain.services.diagnostics import InvalidTemplateError
from sawchain.services.templates import (
    deindent,
    load_template,
    render_single,
    render_template,
    sanitize_template,
    to_yaml,
)

_MULTI_DOCUMENT = """
    apiVersion: v1
    kind: ConfigMap
    metadata:
      name: (concat($prefix, '-cm'))
      namespace: ($namespace)
    data:
      owner: ($owner.name)
    ---
    ---
    apiVersion: v1
    kind: Secret
    metadata:
      name: (concat($prefix, '-secret'))
      namespace: ($namespace)
    stringData:
      hosts: (join(',', ['a', 'b']))
"""


def test_deindent_strips_common_prefix_and_blank_lines() -> None:
    assert deindent("\n    a: 1\n\n    b:\n      c: 2\n") == "a: 1\nb:\n  c: 2"


def test_sanitize_template_prunes_empty_documents() -> None:
    sanitized = sanitize_template(_MULTI_DOCUMENT)

    assert sanitized.count("\n---\n") == 1
    assert sanitized.startswith("apiVersion: v1")


def test_render_template_evaluates_expressions() -> None:
    documents = render_template(
        sanitize_template(_MULTI_DOCUMENT),
        {"prefix": "test", "namespace": "default", "owner": {"name": "qa"}},
    )

    assert [document["metadata"]["name"] for document in documents] == [
        "test-cm",
        "test-secret",
    ]
    assert documents[0]["metadata"]["namespace"] == "default"
    assert documents[0]["data"] == {"owner": "qa"}
    assert documents[1]["stringData"] == {"hosts": "a,b"}


def test_render_template_keeps_binding_types() -> None:
    document = render_single(
        sanitize_template(
            """
            apiVersion: apps/v1
            kind: Deployment
            metadata:
              name: web
            spec:
              replicas: ($replicas)
              paused: (false)
            """
        ),
        {"replicas": 3},
    )

    assert document["spec"] == {"replicas": 3, "paused": False}


def test_render_template_reports_undefined_variables() -> None:
    with pytest.raises(InvalidTemplateError, match=r"variable not defined: \$prefix") as excinfo:
        render_template(sanitize_template(_MULTI_DOCUMENT), {"namespace": "default"})

    assert excinfo.value.kind == "undefined-variable"


def test_render_template_requires_documents() -> None:
    with pytest.raises(InvalidTemplateError) as excinfo:
        render_template(sanitize_template("---\n---\n"), {})

    assert excinfo.value.kind == "wrong-document-count"


def test_render_template_rejects_non_mapping_documents() -> None:
    with pytest.raises(InvalidTemplateError, match="document #1 is not a mapping") as excinfo:
        render_template(sanitize_template("does/not/exist.yaml"), {})

    assert excinfo.value.kind == "invalid-document"


def test_render_template_requires_resource_identity() -> None:
    with pytest.raises(InvalidTemplateError, match="metadata.name"):
        render_template("apiVersion: v1\nkind: ConfigMap\nmetadata: {}\n", {})

    documents = render_template(
        "apiVersion: v1\nkind: ConfigMap\nmetadata: {}\n", {}, require_name=False
    )
    assert documents[0]["kind"] == "ConfigMap"


def test_render_single_rejects_multiple_documents() -> None:
    with pytest.raises(InvalidTemplateError, match="single resource; found 2"):
        render_single(
            sanitize_template(_MULTI_DOCUMENT),
            {"prefix": "p", "namespace": "n", "owner": {"name": "o"}},
        )


def test_sanitize_template_reports_syntax_errors() -> None:
    with pytest.raises(InvalidTemplateError) as excinfo:
        sanitize_template("apiVersion: v1\nkind: [ConfigMap\n")

    assert excinfo.value.kind == "syntax"


def test_unsupported_expressions_are_syntax_errors() -> None:
    with pytest.raises(InvalidTemplateError, match="unsupported template") as excinfo:
        render_template("apiVersion: v1\nkind: ConfigMap\nmetadata:\n  name: (upper($x))\n", {"x": "a"})

    assert excinfo.value.kind == "syntax"


def test_load_template_reads_existing_files(tmp_path: Path) -> None:
    path = tmp_path / "cm.yaml"
    path.write_text("apiVersion: v1\nkind: ConfigMap\nmetadata:\n  name: from-file\n", encoding="utf-8")

    assert "from-file" in load_template(str(path))
    assert load_template("kind: Inline") == "kind: Inline"


def test_to_yaml_joins_documents() -> None:
    rendered = to_yaml([{"kind": "A"}, {"kind": "B"}])

    assert rendered == "kind: A\n---\nkind: B\n"
