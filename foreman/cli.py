"""CLI application — Click-based entry point for Foreman.

Agents live only as long as the supervising process, so ``foreman run``
spawns one agent, waits for it, prints the result and tears down.
"""

from __future__ import annotations

import asyncio
import functools
import json as json_mod
import logging
from typing import Any, Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from foreman.config import ForemanConfig
from foreman.logging import configure_logging
from foreman.orchestration import (
    AgentConfig,
    AgentResult,
    ForemanError,
    Orchestrator,
    OutputFormat,
)
from foreman.tools.agents import register_agent_tools
from foreman.tools.registry import ToolRegistry


def async_cmd(func):
    """Decorator to run an async Click command via asyncio.run()."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        return asyncio.run(func(*args, **kwargs))

    return wrapper


def format_duration_ms(duration: Optional[float]) -> str:
    if duration is None:
        return "-"
    seconds = duration / 1000.0
    if seconds < 60:
        return f"{seconds:.1f}s"
    return f"{int(seconds // 60)}m{int(seconds % 60):02d}s"


def render_result(console: Console, result: AgentResult) -> None:
    """Show a result as a summary table plus the raw output."""
    table = Table(show_header=False, box=None)
    table.add_column(style="bold")
    table.add_column()
    table.add_row("agent", result.agent_id)
    table.add_row("session", result.session_id or "-")
    table.add_row("exit code", "-" if result.exit_code is None else str(result.exit_code))
    table.add_row("cost", "-" if result.cost is None else f"${result.cost:.4f}")
    table.add_row("duration", format_duration_ms(result.duration))
    if result.error:
        table.add_row("error", f"[red]{result.error}[/red]")

    ok = result.exit_code == 0 and not result.error
    console.print(Panel(table, title="agent result", border_style="green" if ok else "red"))
    if result.output:
        console.print(result.output, markup=False, highlight=False)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.option("--no-color", is_flag=True, help="Disable ANSI colors")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, no_color: bool) -> None:
    """Foreman - spawn and supervise sub-agent worker processes."""
    ctx.ensure_object(dict)
    ctx.obj["no_color"] = no_color
    configure_logging(level=logging.DEBUG if verbose else logging.WARNING, colors=not no_color)


@cli.command("run")
@click.argument("task")
@click.option(
    "--output-format",
    type=click.Choice([f.value for f in OutputFormat]),
    default=OutputFormat.JSON.value,
    show_default=True,
)
@click.option("--model", default=None, help="Worker model (defaults to SUB_AGENT_MODEL)")
@click.option("--timeout-ms", type=float, default=None, help="Give up waiting after this long")
@click.option("--max-turns", type=click.IntRange(min=1), default=None)
@click.option("--allowed-tool", "allowed_tools", multiple=True, help="Repeatable")
@click.option("--disallowed-tool", "disallowed_tools", multiple=True, help="Repeatable")
@click.option("--append-system-prompt", default=None)
@click.option("--cwd", "working_directory", default=None, type=click.Path(file_okay=False))
@click.option("--json", "json_output", is_flag=True, help="Structured JSON output")
@click.pass_context
@async_cmd
async def run_cmd(
    ctx: click.Context,
    task: str,
    output_format: str,
    model: Optional[str],
    timeout_ms: Optional[float],
    max_turns: Optional[int],
    allowed_tools: tuple[str, ...],
    disallowed_tools: tuple[str, ...],
    append_system_prompt: Optional[str],
    working_directory: Optional[str],
    json_output: bool,
) -> None:
    """Run TASK in one agent, wait for it and print the result."""
    config = ForemanConfig()
    console = Console(no_color=ctx.obj.get("no_color", False))

    try:
        agent_config = AgentConfig(
            task=task,
            output_format=OutputFormat(output_format),
            model=model,
            max_turns=max_turns,
            allowed_tools=list(allowed_tools),
            disallowed_tools=list(disallowed_tools),
            append_system_prompt=append_system_prompt,
            working_directory=working_directory,
        )
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="TASK") from None

    async with Orchestrator(config.supervisor, config.storage) as orchestrator:
        try:
            agent_id = await orchestrator.spawn(agent_config)
            result = await orchestrator.wait(agent_id, timeout_ms)
        except ForemanError as exc:
            raise click.ClickException(str(exc)) from None

    if json_output:
        click.echo(json_mod.dumps(result.to_payload(), indent=2))
    else:
        render_result(console, result)

    if result.exit_code != 0:
        ctx.exit(1)


@cli.command("tools")
def tools_cmd() -> None:
    """Print the tool definitions a transport would advertise."""
    registry = ToolRegistry()
    register_agent_tools(registry, Orchestrator())
    click.echo(json_mod.dumps(registry.get_api_tools(), indent=2))


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
