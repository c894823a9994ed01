"""Text helpers for rendering a Snapshot: reset countdowns, bars, tooltips."""

from __future__ import annotations

from datetime import datetime, timezone

from src.usage_engine.models import PlanTier, Snapshot, UsageWindow

BAR_FILLED = "█"
BAR_EMPTY = "░"


def format_duration(seconds: int) -> str:
    """Format seconds into a human-readable duration like '2h 13m' or '6d 4h'."""
    if seconds <= 0:
        return "now"
    days = seconds // 86400
    hours = (seconds % 86400) // 3600
    minutes = (seconds % 3600) // 60
    if days > 0:
        return f"{days}d {hours}h" if hours else f"{days}d"
    if hours > 0:
        return f"{hours}h {minutes}m" if minutes else f"{hours}h"
    return f"{minutes}m"


def seconds_until(reset_at: datetime | None, now: datetime | None = None) -> int | None:
    if reset_at is None:
        return None
    now = now or datetime.now(timezone.utc)
    return max(0, int((reset_at - now).total_seconds()))


def format_reset_short(reset_at: datetime | None, now: datetime | None = None) -> str:
    """Countdown for the 5-hour window: '(2h 13m)' or '(13m)'."""
    secs = seconds_until(reset_at, now)
    if secs is None:
        return ""
    hours, rem = divmod(secs, 3600)
    minutes = rem // 60
    if hours > 0:
        return f"({hours}h {minutes}m)"
    return f"({minutes}m)"


def format_reset_long(reset_at: datetime | None, now: datetime | None = None) -> str:
    """Countdown for the 7-day window: '(3d 4h)' or '(4h)'."""
    secs = seconds_until(reset_at, now)
    if secs is None:
        return ""
    days, rem = divmod(secs, 86400)
    hours = rem // 3600
    if days > 0:
        return f"({days}d {hours}h)"
    return f"({hours}h)"


def make_bar(pct: float, width: int = 8) -> str:
    """Block-character progress bar, e.g. '███░░░░░' for 40%."""
    pct = max(0.0, min(100.0, pct))
    filled = int(round(pct / 100 * width))
    return BAR_FILLED * filled + BAR_EMPTY * (width - filled)


def _window_line(label: str, window: UsageWindow | None, fmt: str) -> str:
    if window is None:
        return f"{label} —"
    line = f"{label} {window.utilization_pct:.1f}%"
    if window.reset_at is not None:
        line += f" (resets {window.reset_at.astimezone().strftime(fmt)})"
    return line


def tooltip_lines(snapshot: Snapshot) -> list[str]:
    """Multi-line summary of a snapshot for hover text or a console panel."""
    if snapshot.credentials_error:
        return ["No credentials", "Run: claude login"]

    plan = snapshot.plan_tier.value if snapshot.plan_tier != PlanTier.UNKNOWN else "—"
    lines = [f"Claude {plan}", "─" * 17]
    lines.append(_window_line("5-hour: ", snapshot.short, "%H:%M"))
    lines.append(_window_line("7-day:  ", snapshot.long, "%a %H:%M"))

    ctx = snapshot.context
    lines.append(f"Context: {ctx.tokens_used:,} / {ctx.window_size:,} tokens ({ctx.percent:.0f}%)")
    if ctx.model_id:
        lines.append(f"Model: {ctx.model_id}")
    if snapshot.last_success is not None:
        lines.append(f"Updated: {snapshot.last_success.astimezone().strftime('%H:%M:%S')}")
    return lines
