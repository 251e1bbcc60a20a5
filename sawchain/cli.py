"""Command line entry point for Sawchain."""

from __future__ import annotations

from pathlib import Path
from typing import Any, NoReturn

import click
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from sawchain.config import SawchainSettings, load_settings
from sawchain.core import Sawchain
from sawchain.logging_config import configure_logging
from sawchain.services.diagnostics import DiagnosticsReporter

console = Console()


def _raise_click_error(message: str) -> NoReturn:
    raise click.ClickException(message)


def _load_cli_settings() -> SawchainSettings:
    try:
        return load_settings()
    except (ValidationError, ValueError) as exc:
        raise click.ClickException(f"invalid configuration: {exc}") from exc


def _parse_binding(raw: str) -> tuple[str, Any]:
    name, separator, value = raw.partition("=")
    if not separator or not name.strip():
        raise click.BadParameter(f"expected KEY=VALUE; got {raw!r}", param_hint="--binding")
    try:
        return name.strip(), yaml.safe_load(value)
    except yaml.YAMLError:
        return name.strip(), value


def _load_bindings_file(path: Path) -> dict[str, Any]:
    try:
        loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise click.BadParameter(str(exc), param_hint="--bindings-file") from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise click.BadParameter("bindings file must contain a mapping", param_hint="--bindings-file")
    return loaded


@click.group()
@click.version_option(version="0.1.0")
def main() -> None:
    """Sawchain - template-driven resource helpers for tests."""


@main.command()
@click.argument("template")
@click.option("-b", "--binding", "raw_bindings", multiple=True, help="Binding as KEY=VALUE.")
@click.option(
    "--bindings-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML or JSON file with a mapping of bindings.",
)
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write the rendered manifest to a file instead of stdout.",
)
def render(
    template: str,
    raw_bindings: tuple[str, ...],
    bindings_file: Path | None,
    output: Path | None,
) -> None:
    """Render TEMPLATE (file path or inline YAML) with bindings."""
    settings = _load_cli_settings()
    configure_logging(settings)

    bindings: dict[str, Any] = {}
    if bindings_file is not None:
        bindings.update(_load_bindings_file(bindings_file))
    bindings.update(_parse_binding(raw) for raw in raw_bindings)

    sawchain = Sawchain(
        None,
        settings=settings,
        reporter=DiagnosticsReporter(fail_handler=_raise_click_error),
    )
    if output is not None:
        sawchain.render_to_file(output, template, bindings)
        console.print(f"[green]Rendered manifest written to[/green] {output}")
        return
    rendered = sawchain.render_to_string(template, bindings)
    if console.is_terminal:
        console.print(Syntax(rendered, "yaml"))
    else:
        click.echo(rendered, nl=False)


@main.command(name="config")
def show_config() -> None:
    """Show the resolved SAWCHAIN_* configuration."""
    settings = _load_cli_settings()

    table = Table(title="Sawchain configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for field_name in type(settings).model_fields:
        value = getattr(settings, field_name)
        if field_name == "bindings":
            value = ", ".join(sorted(value)) or "-"
        table.add_row(field_name, "-" if value is None else str(value))
    console.print(table)


if __name__ == "__main__":
    main()
