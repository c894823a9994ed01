"""Entry point for the Claude status console display."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime, timezone

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from src.config import settings
from src.usage_engine.classifier import severity_color
from src.usage_engine.engine import TrackingEngine
from src.usage_engine.formatting import (
    format_reset_long,
    format_reset_short,
    make_bar,
    tooltip_lines,
)
from src.usage_engine.models import PlanTier, Snapshot, UsageWindow
from src.usage_engine.poller import UsagePoller

console = Console()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)

_MUTED = "#666666"
_ACCENT = "#d4a574"


def _window_row(
    engine: TrackingEngine, label: str, window: UsageWindow | None, countdown: str,
) -> tuple[Text, Text, Text, Text]:
    if window is None:
        return Text(label), Text("—", style=_MUTED), Text(""), Text("")
    color = severity_color(engine.classify(window.utilization_pct))
    return (
        Text(label),
        Text(make_bar(window.utilization_pct), style=color),
        Text(f"{window.utilization_pct:3.0f}%", style=color),
        Text(countdown, style=_MUTED),
    )


def render_snapshot(engine: TrackingEngine, snapshot: Snapshot) -> Panel:
    """Build the rich renderable for one snapshot."""
    if snapshot.credentials_error:
        body = Text.assemble(
            ("No creds", "bold #d75f5f"), "  Run: ", ("claude login", _ACCENT),
        )
        return Panel(body, title="Claude", border_style="#444444")

    now = datetime.now(timezone.utc)
    table = Table.grid(padding=(0, 1))
    table.add_row(*_window_row(engine, "5h", snapshot.short, format_reset_short(
        snapshot.short.reset_at if snapshot.short else None, now)))
    table.add_row(*_window_row(engine, "7d", snapshot.long, format_reset_long(
        snapshot.long.reset_at if snapshot.long else None, now)))

    ctx_pct = snapshot.context.percent
    ctx_color = severity_color(engine.classify(ctx_pct))
    table.add_row(
        Text("Ctx"),
        Text(make_bar(ctx_pct), style=ctx_color),
        Text(f"{ctx_pct:3.0f}%", style=ctx_color),
        Text(snapshot.context.model_id or "", style=_MUTED),
    )

    plan = snapshot.plan_tier.value if snapshot.plan_tier != PlanTier.UNKNOWN else "—"
    footer = Text("\n".join(tooltip_lines(snapshot)[2:]), style=_MUTED)
    return Panel(
        Group(table, footer),
        title=Text(f"Claude {plan}", style=f"bold {_ACCENT}"),
        border_style="#444444",
    )


def run_once(as_json: bool) -> int:
    """Poll a single time and print the result."""
    engine = TrackingEngine.from_settings(settings)
    try:
        snapshot = engine.poll()
    finally:
        engine.shutdown()

    if as_json:
        console.print_json(json.dumps(snapshot.to_dict()))
    else:
        console.print(render_snapshot(engine, snapshot))
    return 1 if snapshot.credentials_error else 0


async def _watch(engine: TrackingEngine) -> None:
    with Live(Text("Fetching usage…", style=_MUTED), console=console, auto_refresh=False) as live:
        poller = UsagePoller(
            engine,
            on_snapshot=lambda snap: live.update(render_snapshot(engine, snap), refresh=True),
        )
        engine.start()
        await poller.start()
        try:
            while poller.running:
                await asyncio.sleep(3600)
        finally:
            await poller.stop()


def run_watch(interval: int | None) -> int:
    """Keep polling and re-render on every tick until interrupted."""
    engine = TrackingEngine.from_settings(settings)
    if interval is not None:
        engine.set_poll_interval(interval)
    try:
        asyncio.run(_watch(engine))
    except KeyboardInterrupt:
        pass
    finally:
        engine.shutdown()
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Claude subscription usage status")
    sub = parser.add_subparsers(dest="command")

    once_parser = sub.add_parser("once", help="Poll once and print the current usage")
    once_parser.add_argument("--json", action="store_true", help="Print the snapshot as JSON")

    watch_parser = sub.add_parser("watch", help="Continuously display usage")
    watch_parser.add_argument("--interval", type=int, help="Seconds between polls")

    args = parser.parse_args()

    if args.command == "once":
        sys.exit(run_once(args.json))
    elif args.command == "watch":
        sys.exit(run_watch(args.interval))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
