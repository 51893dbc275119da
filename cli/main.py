#!/usr/bin/env python3
"""
CLI for inspecting data flow in workflow canvas snapshots.

A snapshot is a JSON file with ``nodes`` and ``edges`` (canvas format) and
optional ``nodeOutputs`` / ``pinnedOutputs`` keyed by node id.

Usage:
    dataflow upstream snapshot.json http-2
    dataflow resolve snapshot.json http-2 "{{Webhook.body.email}}"
    dataflow -v branches snapshot.json
"""
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, NoReturn

import click
from dotenv import load_dotenv
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

# Load .env before importing engine modules
load_dotenv()

from shared.logger import set_level  # noqa: E402
from workflow_dataflow import EditingSession, build_session  # noqa: E402
from workflow_dataflow.errors import NodeNotFoundError, WorkflowDataflowError  # noqa: E402
from workflow_dataflow.schema.models import RenderMode  # noqa: E402

console = Console()

# Global verbose flag
VERBOSE = False

PREVIEW_LIMIT = 60


def _fail(error: BaseException) -> NoReturn:
    if VERBOSE:
        console.print_exception()
    console.print(f"[bold red]Error:[/bold red] {escape(str(error))}")
    sys.exit(1)


def _preview(value: Any) -> str:
    text = value if isinstance(value, str) else json.dumps(value, ensure_ascii=False, default=str)
    if len(text) > PREVIEW_LIMIT:
        text = text[: PREVIEW_LIMIT - 1] + "…"
    return escape(text)


def _load_session(snapshot: str, **options: Any) -> EditingSession:
    try:
        payload = Path(snapshot).read_text(encoding="utf-8")
        return build_session(payload, **options)
    except (OSError, WorkflowDataflowError) as exc:
        _fail(exc)


def _node_label(session: EditingSession, node_id: str) -> str:
    node = session.graph.maybe_node(node_id)
    return f"{node.display_name} ({node_id})" if node is not None else node_id


@click.group()
@click.version_option(version="0.1.0", prog_name="dataflow")
@click.option('--verbose', '-v', is_flag=True, help='Debug logging and full error tracebacks')
def cli(verbose: bool):
    """
    Inspect upstream data, template resolution and branches of a workflow snapshot.

    \b
    Examples:
      dataflow upstream snapshot.json http-2
      dataflow resolve snapshot.json http-2 "{{ $('Webhook').item.json.body }}"
      dataflow inspect snapshot.json http-2 "{{Webhook.missing}} {{now}}"
    """
    global VERBOSE
    VERBOSE = verbose
    if verbose:
        set_level("DEBUG")


@cli.command()
@click.argument('snapshot', type=click.Path(dir_okay=False))
@click.argument('node_id')
@click.option('--branches/--no-branches', default=None, help='Skip inactive if/switch branches (default from FOLLOW_ACTIVE_BRANCHES)')
def upstream(snapshot: str, node_id: str, branches):
    """Show the direct-parent and named upstream data visible to NODE_ID."""
    session = _load_session(snapshot, follow_active_branches=branches)
    try:
        data = session.upstream(node_id)
    except NodeNotFoundError as exc:
        _fail(WorkflowDataflowError(f"Unknown node {exc}"))

    console.print(Panel.fit(f"[bold cyan]Upstream of {escape(_node_label(session, node_id))}[/bold cyan]", border_style="cyan"))

    ordered = Table(title="Direct parents (ordered)", box=box.ROUNDED)
    ordered.add_column("#", style="cyan", justify="right")
    ordered.add_column("Output")
    for index, output in enumerate(data.ordered):
        ordered.add_row(str(index), _preview(output))
    console.print(ordered)

    named = Table(title="Named upstream", box=box.ROUNDED)
    named.add_column("Node", style="cyan")
    named.add_column("Output")
    for name, output in data.named.items():
        named.add_row(escape(name), _preview(output))
    console.print(named)


@cli.command()
@click.argument('snapshot', type=click.Path(dir_okay=False))
@click.argument('node_id')
@click.argument('text')
@click.option('--mode', '-m', type=click.Choice([mode.value for mode in RenderMode]), default=RenderMode.text.value, help='Render mode')
def resolve(snapshot: str, node_id: str, text: str, mode: str):
    """Render TEXT against the data upstream of NODE_ID."""
    session = _load_session(snapshot)
    try:
        rendered = session.resolve(node_id, text, RenderMode(mode))
    except NodeNotFoundError as exc:
        _fail(WorkflowDataflowError(f"Unknown node {exc}"))
    click.echo(rendered)


@cli.command()
@click.argument('snapshot', type=click.Path(dir_okay=False))
@click.argument('node_id')
@click.argument('text')
def inspect(snapshot: str, node_id: str, text: str):
    """List every {{...}} span in TEXT and whether it resolves."""
    session = _load_session(snapshot)
    try:
        statuses = session.inspect(node_id, text)
    except NodeNotFoundError as exc:
        _fail(WorkflowDataflowError(f"Unknown node {exc}"))

    table = Table(title="Template spans", box=box.ROUNDED)
    table.add_column("Span", style="cyan")
    table.add_column("Node", style="dim")
    table.add_column("Value")
    table.add_column("Status", justify="center")
    for status in statuses:
        marker = "[green]found[/green]" if status.exists else "[yellow]missing[/yellow]"
        value = _preview(status.rendered) if status.exists else "[dim]-[/dim]"
        table.add_row(escape(status.placeholder), escape(status.node_name or ""), value, marker)
    console.print(table)


@cli.command()
@click.argument('snapshot', type=click.Path(dir_okay=False))
@click.argument('node_id')
def refs(snapshot: str, node_id: str):
    """Check the templated fields of NODE_ID's configuration for unresolved spans."""
    session = _load_session(snapshot)
    try:
        issues = session.check_references(node_id)
    except NodeNotFoundError as exc:
        _fail(WorkflowDataflowError(f"Unknown node {exc}"))

    if not issues:
        console.print("[green]✓[/green] All references resolve")
        return
    table = Table(title="Unresolved references", box=box.ROUNDED)
    table.add_column("Field", style="cyan")
    table.add_column("Span")
    for issue in issues:
        table.add_row(escape(issue.field), escape(issue.placeholder))
    console.print(table)
    sys.exit(1)


@cli.command()
@click.argument('snapshot', type=click.Path(dir_okay=False))
@click.argument('node_id')
def variables(snapshot: str, node_id: str):
    """List the variable paths NODE_ID can reference."""
    session = _load_session(snapshot)
    try:
        paths = session.variables(node_id)
    except NodeNotFoundError as exc:
        _fail(WorkflowDataflowError(f"Unknown node {exc}"))

    table = Table(title="Variables", box=box.ROUNDED)
    table.add_column("Path", style="cyan")
    table.add_column("Value")
    for path, value in paths:
        table.add_row(escape("{{" + path + "}}"), _preview(value))
    console.print(table)


@cli.command()
@click.argument('snapshot', type=click.Path(dir_okay=False))
def branches(snapshot: str):
    """Show every edge and whether it is on an active branch."""
    session = _load_session(snapshot)

    table = Table(title="Edges", box=box.ROUNDED)
    table.add_column("Edge", style="cyan")
    table.add_column("Source")
    table.add_column("Handle", style="dim")
    table.add_column("Target")
    table.add_column("Active", justify="center")
    for edge, active in session.edge_states():
        table.add_row(
            escape(edge.id),
            escape(_node_label(session, edge.source)),
            escape(edge.source_handle or ""),
            escape(_node_label(session, edge.target)),
            "[green]●[/green]" if active else "[dim]○[/dim]",
        )
    console.print(table)


@cli.command(name="test")
@click.argument('snapshot', type=click.Path(dir_okay=False))
@click.argument('node_id')
def test_node(snapshot: str, node_id: str):
    """Run a test of NODE_ID on the executor back-end and print its output."""
    session = _load_session(snapshot)
    try:
        output = asyncio.run(session.test_node(node_id))
    except WorkflowDataflowError as exc:
        _fail(exc)
    click.echo(json.dumps(output, indent=2, ensure_ascii=False, default=str))


@cli.command()
@click.option('--format', '-f', 'fmt', type=click.Choice(['json', 'table']), default='table', help='Output format')
def config(fmt: str):
    """
    Show current configuration.

    Displays configuration values loaded from environment variables and .env file.
    """
    from shared.config import config as dataflow_config

    sections = {
        "Logging": [
            ("log_level", "LOG_LEVEL", False),
        ],
        "Template Resolution": [
            ("now_timezone", "NOW_TIMEZONE", False),
            ("now_format", "NOW_FORMAT", False),
            ("positional_input_prefix", "POSITIONAL_INPUT_PREFIX", False),
        ],
        "Sessions": [
            ("follow_active_branches", "FOLLOW_ACTIVE_BRANCHES", False),
            ("clear_output_on_test_error", "CLEAR_OUTPUT_ON_TEST_ERROR", False),
        ],
        "Executor Back-end": [
            ("executor_base_url", "EXECUTOR_BASE_URL", False),
            ("executor_api_token", "EXECUTOR_API_TOKEN", True),
            ("executor_timeout", "EXECUTOR_TIMEOUT", False),
        ],
    }

    def _masked(value: Any) -> str:
        return "***" + str(value)[-4:] if len(str(value)) > 4 else "***"

    if fmt == 'json':
        output = {}
        for section, items in sections.items():
            output[section] = {}
            for attr, env_var, is_secret in items:
                value = getattr(dataflow_config, attr, None)
                output[section][attr] = _masked(value) if is_secret and value else value
        click.echo(json.dumps(output, indent=2, default=str))
        return

    console.print(Panel.fit("[bold cyan]Dataflow Configuration[/bold cyan]", border_style="cyan"))
    for section, items in sections.items():
        table = Table(title=section, box=box.ROUNDED)
        table.add_column("Setting", style="cyan")
        table.add_column("Env Variable", style="dim")
        table.add_column("Value")
        table.add_column("Status", justify="center")

        for attr, env_var, is_secret in items:
            value = getattr(dataflow_config, attr, None)
            if value is None:
                display_value = "[dim]not set[/dim]"
                status = "[yellow]○[/yellow]"
            elif is_secret:
                display_value = _masked(value)
                status = "[green]●[/green]"
            else:
                display_value = escape(str(value))
                status = "[green]●[/green]"
            table.add_row(attr, env_var, display_value, status)

        console.print(table)
        console.print()


def main():
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
