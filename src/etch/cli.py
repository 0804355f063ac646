# src/etch/cli.py
"""etch Command Line Interface.

Entry point for the etch CLI tool.
"""

import json
from pathlib import Path

import typer
from pydantic import ValidationError

from etch import __version__
from etch.contracts.errors import EtchError
from etch.contracts.protocol import NodeRequest
from etch.core.config import EtchSettings, load_settings
from etch.core.dag import DependencyGraph, DependencyItem, GraphValidationError
from etch.core.logging import configure_logging
from etch.core.repository import ConfigRepository
from etch.engine.context import resolve_tagbase
from etch.engine.filter import strip_attributes
from etch.engine.protocol import render_json, render_xml
from etch.engine.server import EtchServer

app = typer.Typer(
    name="etch",
    help="etch: generate node configuration from a config repository.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"etch version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """etch: generate node configuration from a config repository."""
    pass


def _load_settings(settings: str) -> EtchSettings:
    try:
        return load_settings(Path(settings))
    except FileNotFoundError:
        typer.echo(f"Error: Settings file not found: {settings}", err=True)
        raise typer.Exit(1) from None
    except ValidationError as e:
        typer.echo("Configuration errors:", err=True)
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            typer.echo(f"  - {loc}: {error['msg']}", err=True)
        raise typer.Exit(1) from None


@app.command()
def generate(
    settings: str = typer.Option(
        ...,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
    request: Path = typer.Option(
        ...,
        "--request",
        "-r",
        help="Path to a node request as JSON.",
    ),
    output_format: str = typer.Option(
        "xml",
        "--format",
        "-f",
        help="Response format: xml or json.",
    ),
) -> None:
    """Answer one node request and print the response."""
    if output_format not in ("xml", "json"):
        typer.echo(f"Error: Unknown format: {output_format}", err=True)
        raise typer.Exit(1)
    config = _load_settings(settings)
    configure_logging(config.log_level, json_output=config.json_logs)

    try:
        payload = json.loads(request.read_text())
    except (OSError, json.JSONDecodeError) as e:
        typer.echo(f"Error: Unable to read request {request}: {e}", err=True)
        raise typer.Exit(1) from None

    try:
        node_request = NodeRequest.from_mapping(payload)
        response = EtchServer.from_settings(config).handle(node_request)
    except EtchError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    if output_format == "json":
        typer.echo(render_json(response))
    else:
        typer.echo(render_xml(response).decode("utf-8"))


def _static_graph(repository: ConfigRepository) -> DependencyGraph:
    """Dependencies any node could see, with filter attributes ignored."""
    graph = DependencyGraph()
    for path in repository.list_paths():
        item = DependencyItem("file", path)
        graph.add_item(item)
        config = repository.load_config(path, strip_attributes)
        for depend in config.depend:
            graph.add_dependency(item, DependencyItem("file", depend))
        for dependcommand in config.dependcommand:
            graph.add_dependency(item, DependencyItem("command", dependcommand))
    for name in repository.list_commands():
        item = DependencyItem("command", name)
        graph.add_item(item)
        commands = repository.load_commands(name, strip_attributes)
        for depend in commands.depend:
            graph.add_dependency(item, DependencyItem("command", depend))
        for dependfile in commands.dependfile:
            graph.add_dependency(item, DependencyItem("file", dependfile))
    return graph


@app.command()
def validate(
    settings: str = typer.Option(
        ...,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
    tag: str = typer.Option(
        "",
        "--tag",
        "-t",
        help="Tag selecting the repository slice (default: untagged base).",
    ),
) -> None:
    """Validate every document in a repository and its dependency graph."""
    config = _load_settings(settings)

    try:
        repository = ConfigRepository(resolve_tagbase(config.configbase, tag))
        repository.load_defaults()
        graph = _static_graph(repository)
        graph.validate()
    except GraphValidationError as e:
        typer.echo(f"Dependency graph error: {e}", err=True)
        raise typer.Exit(1) from None
    except EtchError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    typer.echo(
        f"Repository valid: {len(repository.list_paths())} files, "
        f"{len(repository.list_commands())} commands, {graph.edge_count} dependencies"
    )


if __name__ == "__main__":
    app()
