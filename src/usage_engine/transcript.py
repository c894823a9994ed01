"""Read current context-window usage from Claude Code session transcripts.

Claude Code writes one JSONL transcript per session under
``~/.claude/projects/<project>/<session-id>.jsonl``. The newest transcript is
the active session; its last assistant record carries the token counts of
the most recent turn, which is what currently occupies the context window.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from src.usage_engine.models import ContextUsage

logger = logging.getLogger(__name__)

TRANSCRIPT_SUFFIX = ".jsonl"

DEFAULT_CONTEXT_WINDOW = 200_000

# Some Sonnet tiers can get a 1M window in beta, but subscription (OAuth)
# users are limited to 200K, so every entry stays at the default.
MODEL_CONTEXT_WINDOWS: dict[str, int] = {
    "claude-opus-4-1": DEFAULT_CONTEXT_WINDOW,
    "claude-opus-4": DEFAULT_CONTEXT_WINDOW,
    "claude-sonnet-4-5": DEFAULT_CONTEXT_WINDOW,
    "claude-sonnet-4": DEFAULT_CONTEXT_WINDOW,
    "claude-haiku-4-5": DEFAULT_CONTEXT_WINDOW,
    "claude-3-7-sonnet": DEFAULT_CONTEXT_WINDOW,
    "claude-3-5-haiku": DEFAULT_CONTEXT_WINDOW,
}


def default_projects_dir() -> Path:
    """Return the path to ~/.claude/projects."""
    return Path.home() / ".claude" / "projects"


def context_window_for_model(model_id: str | None) -> int:
    """Look up the context window for *model_id*.

    Model ids usually carry a date suffix ("claude-sonnet-4-5-20250929"), so
    the longest table key that prefixes the id wins.
    """
    if not model_id:
        return DEFAULT_CONTEXT_WINDOW
    if model_id in MODEL_CONTEXT_WINDOWS:
        return MODEL_CONTEXT_WINDOWS[model_id]
    matches = [k for k in MODEL_CONTEXT_WINDOWS if model_id.startswith(k)]
    if matches:
        return MODEL_CONTEXT_WINDOWS[max(matches, key=len)]
    return DEFAULT_CONTEXT_WINDOW


def find_latest_transcript(projects_root: Path) -> Path | None:
    """Return the most recently modified transcript under *projects_root*.

    Ties on modification time go to the lexicographically greatest path so
    the choice is deterministic.
    """
    try:
        project_dirs = list(os.scandir(projects_root))
    except OSError:
        return None

    best: tuple[int, str] | None = None
    for project in project_dirs:
        if project.name.startswith("."):
            continue
        try:
            if not project.is_dir():
                continue
            entries = list(os.scandir(project.path))
        except OSError as e:
            logger.debug("Skipping project dir %s: %s", project.path, e)
            continue

        for entry in entries:
            if not entry.name.endswith(TRANSCRIPT_SUFFIX):
                continue
            try:
                if not entry.is_file():
                    continue
                mtime = entry.stat().st_mtime_ns
            except OSError:
                continue
            key = (mtime, entry.path)
            if best is None or key > best:
                best = key

    return Path(best[1]) if best else None


def _iter_records(path: Path) -> Iterator[dict[str, Any]]:
    """Yield JSON object records from a JSONL file, skipping malformed lines."""
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    record = json.loads(line)
                except (ValueError, RecursionError):
                    continue
                if isinstance(record, dict):
                    yield record
    except OSError as e:
        logger.debug("Could not read %s: %s", path, e)


def _token_count(usage: dict[str, Any], key: str) -> int:
    value = usage.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return max(0, int(value))


def read_context_usage(transcript: Path) -> ContextUsage:
    """Derive context usage from the last assistant record in *transcript*."""
    input_tokens = 0
    cache_creation = 0
    cache_read = 0
    model: str | None = None

    for record in _iter_records(transcript):
        if record.get("type") != "assistant":
            continue
        message = record.get("message")
        if not isinstance(message, dict):
            continue

        if isinstance(message.get("model"), str):
            model = message["model"]

        usage = message.get("usage")
        if isinstance(usage, dict):
            # Overwrite, not accumulate: only the latest turn is in context
            input_tokens = _token_count(usage, "input_tokens")
            cache_creation = _token_count(usage, "cache_creation_input_tokens")
            cache_read = _token_count(usage, "cache_read_input_tokens")

    return ContextUsage(
        tokens_used=input_tokens + cache_creation + cache_read,
        window_size=context_window_for_model(model),
        model_id=model,
        transcript_path=transcript,
    )


def scan(projects_root: str | Path | None = None) -> ContextUsage:
    """Scan the transcript tree and return current context usage.

    Never raises: no projects, no transcripts or an unreadable transcript all
    yield a zero-usage result.
    """
    root = Path(projects_root).expanduser() if projects_root is not None else default_projects_dir()
    transcript = find_latest_transcript(root)
    if transcript is None:
        logger.debug("No transcripts under %s", root)
        return ContextUsage(tokens_used=0, window_size=DEFAULT_CONTEXT_WINDOW)
    return read_context_usage(transcript)


class ContextScanner:
    """Scanner bound to a transcript root, for injection into the engine."""

    def __init__(self, projects_root: str | Path | None = None) -> None:
        self.projects_root = (
            Path(projects_root).expanduser() if projects_root is not None else default_projects_dir()
        )

    def scan(self) -> ContextUsage:
        return scan(self.projects_root)
