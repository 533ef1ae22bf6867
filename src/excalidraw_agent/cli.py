"""
Command-line interface for the diagram toolkit.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from excalidraw_agent.config import AgentToolkitConfig
from excalidraw_agent.errors import ExcalidrawAgentError
from excalidraw_agent.generators.registry import create_generator
from excalidraw_agent.http import HttpTransport
from excalidraw_agent.logging import setup_logging
from excalidraw_agent.models import Diagram
from excalidraw_agent.modifier import DiagramModifier
from excalidraw_agent.pipeline import OUTPUT_MODES, modify_from_share_link
from excalidraw_agent.publisher import ExcalidrawPublisher, Publisher, ShareServicePublisher
from excalidraw_agent.resolver import ShareLinkResolver, read_diagram_file
from excalidraw_agent.summarize import find_dangling_bindings, summarize_diagram

console = Console()


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Resolve, inspect and modify Excalidraw diagrams",
        prog="excalidraw-agent",
    )

    # Global options
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output (debug logging)",
    )
    parser.add_argument(
        "--config",
        help="YAML config file",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Summarize command
    summarize_parser = subparsers.add_parser("summarize", help="Summarize a diagram")
    summarize_parser.add_argument("source", help="Share URL or .excalidraw file")
    summarize_parser.add_argument(
        "--json",
        action="store_true",
        help="Output as JSON",
    )

    # Resolve command
    resolve_parser = subparsers.add_parser("resolve", help="Resolve a share link to scene JSON")
    resolve_parser.add_argument("source", help="Share URL or .excalidraw file")
    resolve_parser.add_argument(
        "-o",
        "--output",
        dest="output_file",
        help="Write the scene to this file instead of stdout",
    )

    # Modify command
    modify_parser = subparsers.add_parser("modify", help="Modify a shared diagram with an LLM")
    modify_parser.add_argument("source", help="Share URL")
    modify_parser.add_argument("request", help="Natural-language change request")
    modify_parser.add_argument(
        "--output",
        choices=OUTPUT_MODES,
        default="both",
        help="What to return (default: both)",
    )
    modify_parser.add_argument("--provider", choices=["openai", "anthropic"], help="LLM provider")
    modify_parser.add_argument("--model", help="Model name")
    modify_parser.add_argument(
        "--json",
        action="store_true",
        help="Output as JSON",
    )

    args = parser.parse_args(argv)

    # Setup logging based on verbosity
    if getattr(args, "verbose", False):
        setup_logging("DEBUG")
    else:
        setup_logging("WARNING")

    commands = {
        "summarize": cmd_summarize,
        "resolve": cmd_resolve,
        "modify": cmd_modify,
    }
    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        return

    try:
        asyncio.run(command(args))
    except (ExcalidrawAgentError, ValueError, ImportError) as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


def _load_config(path: str | None, verbose: bool = False) -> AgentToolkitConfig:
    """Config file (if any) overlaid with EXCALIDRAW_AGENT_* variables."""
    base = AgentToolkitConfig.from_yaml(Path(path)) if path else None
    config = AgentToolkitConfig.from_env(base)
    if not verbose:
        setup_logging(config.log_level)
    return config


async def _load_diagram(source: str, config: AgentToolkitConfig) -> Diagram:
    """Read a local file, or resolve a share URL."""
    if Path(source).is_file():
        return read_diagram_file(source)
    async with HttpTransport() as transport:
        return await ShareLinkResolver(transport, config).resolve(source)


async def cmd_summarize(args: argparse.Namespace) -> None:
    """Print counts, bounds and consistency signals."""
    config = _load_config(args.config, args.verbose)
    diagram = await _load_diagram(args.source, config)
    summary = summarize_diagram(diagram)
    dangling = find_dangling_bindings(diagram.elements)

    if args.json:
        data = summary.to_dict()
        data["danglingBindings"] = [{"arrowId": a, "missingId": m} for a, m in dangling]
        console.print_json(json.dumps(data))
        return

    table = Table(title="Diagram Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Elements", str(summary.element_count))
    table.add_row("Shapes", str(summary.shape_count))
    table.add_row("Arrows", str(summary.arrow_count))
    table.add_row("Text", str(summary.text_count))
    table.add_row("Deleted", str(summary.deleted_count))
    table.add_row("Unbound arrows", str(summary.unbound_arrow_count))
    table.add_row("Overlapping shape pairs", str(summary.overlap_pairs))
    bounds = summary.bounds
    table.add_row(
        "Bounds", f"({bounds.min_x:g}, {bounds.min_y:g}) - ({bounds.max_x:g}, {bounds.max_y:g})"
    )

    console.print(table)
    for arrow_id, missing_id in dangling:
        console.print(f"[yellow]⚠[/yellow] Arrow {arrow_id} is bound to missing element {missing_id}")


async def cmd_resolve(args: argparse.Namespace) -> None:
    """Write the resolved scene JSON."""
    config = _load_config(args.config, args.verbose)
    diagram = await _load_diagram(args.source, config)
    scene = json.dumps(diagram.to_dict(), indent=2)

    if args.output_file:
        Path(args.output_file).write_text(scene, encoding="utf-8")
        console.print(
            f"[green]Wrote {len(diagram.elements)} elements to {args.output_file}[/green]"
        )
        return
    console.print_json(scene)


async def cmd_modify(args: argparse.Namespace) -> None:
    """Apply a change request to a shared diagram."""
    config = _load_config(args.config, args.verbose)
    if args.provider:
        config.provider = args.provider
    if args.model:
        config.model = args.model
    generator = create_generator(config)
    modifier = DiagramModifier(
        generator,
        config.retry,
        config.generation_timeout_ms,
        prefer_explicit_edits=config.prefer_explicit_edits,
    )

    async with HttpTransport() as transport:
        publisher: Publisher
        if config.api_base:
            publisher = ShareServicePublisher(transport, config.api_base, config.request_timeout_ms)
        else:
            publisher = ExcalidrawPublisher(transport, config)
        result = await modify_from_share_link(
            args.source,
            args.request,
            resolver=ShareLinkResolver(transport, config),
            modifier=modifier,
            publisher=publisher,
            output=args.output,
        )

    if args.json:
        console.print_json(json.dumps(result.to_dict()))
        if result.status != "success":
            sys.exit(1)
        return

    if result.status != "success":
        console.print(f"[red]Modification failed ({result.reason})[/red]")
        for issue in result.issues:
            console.print(f"  [red]✗[/red] {issue.get('message')}")
        sys.exit(1)

    changes = result.changes or {}
    console.print("[green]✓[/green] Diagram modified")
    console.print(
        f"  Added: {len(changes.get('addedIds', []))}  "
        f"Removed: {len(changes.get('removedIds', []))}  "
        f"Modified: {len(changes.get('modifiedIds', []))}"
    )
    if result.before and result.after:
        console.print(
            f"  Elements: {result.before.element_count} -> {result.after.element_count}"
        )
    if result.share_link:
        console.print(f"  Share link: {result.share_link.url}")
    console.print(f"[dim]trace {result.stats.trace_id}, {result.stats.tokens} tokens[/dim]")


if __name__ == "__main__":
    main()
