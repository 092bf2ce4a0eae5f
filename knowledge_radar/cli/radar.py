#!/usr/bin/env python3
"""
Command line for Knowledge Radar.

Usage:
    radar refs economy            - Show a reference category
    radar timeline indian         - Show a history timeline
    radar maps                    - Show map sections
    radar scan                    - Run one staleness scan
    radar matches                 - Show keyword news matches
    radar chat                    - Ask follow-up questions about the latest scan
    radar watch --duration 120    - Run the heartbeat and print results as they arrive
"""

import asyncio
import json
from pathlib import Path
from typing import List, Optional

import click
from rich.console import Console
from rich.table import Table

from ..engine.bus import Event
from ..engine.config import Config
from ..engine.heartbeat import INSIGHT_SOURCE, NEWS_MATCH_SOURCE
from ..engine.logging_setup import setup_logging
from ..engine.models import CategoryId, InsightStatus, KeywordMatch
from ..engine.runtime import RadarRuntime

console = Console()


def _load_config(ctx: click.Context) -> Config:
    path = ctx.obj.get("config_path")
    return Config.load(Path(path) if path else None)


@click.group()
@click.option("--config", "-c", "config_path", type=click.Path(exists=True), help="Config file path")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--log-file", type=click.Path(), help="Also write logs to this file")
@click.pass_context
def cli(ctx, config_path: Optional[str], verbose: bool, log_file: Optional[str]):
    """Knowledge Radar - reference cache and note staleness radar."""
    setup_logging("DEBUG" if verbose else "WARNING", Path(log_file) if log_file else None)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@cli.command()
@click.argument("category", type=click.Choice([c.value for c in CategoryId]))
@click.option("--refresh", is_flag=True, help="Bypass the cache")
@click.pass_context
def refs(ctx, category: str, refresh: bool):
    """Show a reference category."""
    asyncio.run(show_references(_load_config(ctx), CategoryId(category), refresh))


async def show_references(config: Config, category: CategoryId, refresh: bool):
    async with RadarRuntime(config) as runtime:
        payload = await runtime.cache.get(category, force_refresh=refresh)
        error = runtime.cache.last_error(category)
    if error:
        console.print(f"[yellow]Content service unavailable ({error}), showing bundled data[/yellow]")
    console.print_json(json.dumps(payload, default=str))


@cli.command()
@click.argument("kind", type=click.Choice(["indian", "world"]))
@click.option("--limit", "-l", default=20, help="Max events")
@click.pass_context
def timeline(ctx, kind: str, limit: int):
    """Show a history timeline."""
    asyncio.run(show_timeline(_load_config(ctx), kind, limit))


async def show_timeline(config: Config, kind: str, limit: int):
    async with RadarRuntime(config) as runtime:
        events = await runtime.cache.get_history_timeline(kind)

    table = Table(title=f"{kind.title()} history ({len(events)} events)")
    table.add_column("Year", style="cyan")
    table.add_column("Event", no_wrap=False)
    table.add_column("Category", style="magenta")
    for e in events[:limit]:
        table.add_row(e.get("year", ""), e.get("event", ""), e.get("category", ""))
    console.print(table)


@cli.command()
@click.pass_context
def maps(ctx):
    """Show map sections."""
    asyncio.run(show_maps(_load_config(ctx)))


async def show_maps(config: Config):
    async with RadarRuntime(config) as runtime:
        payload = await runtime.cache.get_maps()

    if not payload["sectionOrder"]:
        console.print("[yellow]No maps available[/yellow]")
        return
    for section in payload["sectionOrder"]:
        console.print(f"[bold]{section}[/bold]")
        for item in payload["sections"].get(section, []):
            console.print(f"  • {item.get('title', 'Untitled')}")


@cli.command()
@click.pass_context
def scan(ctx):
    """Run one staleness scan over recent notes."""
    asyncio.run(run_scan(_load_config(ctx)))


async def run_scan(config: Config):
    async with RadarRuntime(config) as runtime:
        with console.status("Knowledge Radar: searching for news updates..."):
            status = await runtime.insight_agent.check_note_status()
    display_status(status)


def display_status(status: InsightStatus):
    color = "yellow" if status.has_updates else "green"
    console.print(f"[{color}]{status.state.value.upper()}[/{color}]: {status.message}")
    if not status.updates:
        return

    table = Table(title="News updates for your notes")
    table.add_column("Note", style="cyan")
    table.add_column("Article", style="magenta")
    table.add_column("Reason", no_wrap=False)
    for u in status.updates:
        table.add_row(u.note_title, u.article_title, u.reason)
    console.print(table)


@cli.command()
@click.option("--refresh", is_flag=True, help="Ignore the cached match set")
@click.pass_context
def matches(ctx, refresh: bool):
    """Show keyword news matches for your study topics."""
    asyncio.run(show_matches(_load_config(ctx), refresh))


async def show_matches(config: Config, refresh: bool):
    async with RadarRuntime(config) as runtime:
        matcher = runtime.news_matcher
        found = await (matcher.force_refresh() if refresh else matcher.check_matches())
    display_matches(found)


def display_matches(found: List[KeywordMatch]):
    if not found:
        console.print("[green]No news matches for your topics[/green]")
        return

    table = Table(title=f"Knowledge Radar ({len(found)} unread)")
    table.add_column("Topic", style="cyan")
    table.add_column("Article", no_wrap=False)
    table.add_column("Source", style="magenta")
    for m in found:
        table.add_row(m.matched_keyword, m.article_title, m.article_source or "")
    console.print(table)


@cli.command()
@click.pass_context
def chat(ctx):
    """Ask follow-up questions about the latest scan."""
    asyncio.run(run_chat(_load_config(ctx)))


async def run_chat(config: Config):
    async with RadarRuntime(config) as runtime:
        with console.status("Analyzing your notes..."):
            status = await runtime.insight_agent.check_note_status()
            found = await runtime.news_matcher.check_matches()
        display_status(status)

        session = runtime.new_chat_session()
        console.print("[dim]Type a question, or an empty line to quit.[/dim]")
        try:
            while True:
                message = await asyncio.to_thread(console.input, "[bold cyan]you>[/bold cyan] ")
                if not message.strip():
                    break
                with console.status("Thinking..."):
                    reply = await session.send(message, status, found)
                console.print(f"[bold green]radar>[/bold green] {reply.content}")
        except (EOFError, KeyboardInterrupt):
            pass
        finally:
            session.close()


@cli.command()
@click.option("--duration", "-d", default=120.0, help="Seconds to keep the heartbeat running")
@click.pass_context
def watch(ctx, duration: float):
    """Run the heartbeat and print results as they arrive."""
    asyncio.run(run_watch(_load_config(ctx), duration))


async def run_watch(config: Config, duration: float):
    async with RadarRuntime(config) as runtime:
        async def on_insight(event: Event):
            display_status(event.data["result"])

        async def on_matches(event: Event):
            console.print(f"[cyan]Heartbeat:[/cyan] {len(event.data['result'])} unread news matches")

        runtime.event_bus.subscribe(f"heartbeat.{INSIGHT_SOURCE}", on_insight)
        runtime.event_bus.subscribe(f"heartbeat.{NEWS_MATCH_SOURCE}", on_matches)

        await runtime.heartbeat.focus()
        try:
            await asyncio.sleep(duration)
        finally:
            await runtime.heartbeat.blur()

        summary = runtime.error_sink.get_summary()
        if summary["total_errors"]:
            console.print(f"[dim]{summary['total_errors']} recovered error(s) during this session[/dim]")


def main():
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
