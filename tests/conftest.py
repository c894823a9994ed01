"""Shared test fixtures."""

from __future__ import annotations

import json
import os
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

from src.usage_engine.credentials import CredentialStore
from src.usage_engine.engine import EngineConfig, TrackingEngine
from src.usage_engine.errors import AuthError
from src.usage_engine.models import ContextUsage, Credentials, UsageWindow

FIXED_NOW = datetime(2026, 2, 19, 10, 0, tzinfo=timezone.utc)


def make_window(pct: float, hours: int = 3) -> UsageWindow:
    return UsageWindow(utilization_pct=pct, reset_at=FIXED_NOW + timedelta(hours=hours))


class FakeMonitor:
    """In-memory stand-in for CredentialsMonitor."""

    def __init__(self) -> None:
        self._changed = False
        self.started: list[Path] = []
        self.stop_calls = 0

    @property
    def changed(self) -> bool:
        return self._changed

    def start(self, path: str | Path) -> None:
        self.started.append(Path(path))

    def stop(self) -> None:
        self.stop_calls += 1

    def mark_changed(self) -> None:
        self._changed = True

    def consume_changed(self) -> bool:
        changed, self._changed = self._changed, False
        return changed


class FakeFetcher:
    """Replays a scripted sequence of results (windows tuple or exception)."""

    def __init__(self, results: list[Any] | None = None) -> None:
        self.results = list(results or [])
        self.calls: list[Credentials] = []
        self.closed = False

    def fetch(self, credentials: Credentials) -> tuple[UsageWindow, UsageWindow]:
        self.calls.append(credentials)
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result

    def close(self) -> None:
        self.closed = True


class FakeScanner:
    def __init__(self, usage: ContextUsage | None = None) -> None:
        self.usage = usage or ContextUsage()
        self.calls = 0

    def scan(self) -> ContextUsage:
        self.calls += 1
        return self.usage


@pytest.fixture
def write_credentials(tmp_path: Path) -> Callable[..., Path]:
    """Write a Claude Code style credentials file and return its path."""

    def _write(data: Any = None, *, token: str = "abc", sub: str | None = "max_5x", raw: str | None = None) -> Path:
        path = tmp_path / ".credentials.json"
        if raw is not None:
            path.write_text(raw, encoding="utf-8")
            return path
        if data is None:
            oauth: dict[str, Any] = {"accessToken": token, "refreshToken": "r", "expiresAt": 1771512000000}
            if sub is not None:
                oauth["subscriptionType"] = sub
            data = {"claudeAiOauth": oauth}
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def projects_dir(tmp_path: Path) -> Path:
    path = tmp_path / "projects"
    path.mkdir()
    return path


@pytest.fixture
def write_transcript(projects_dir: Path) -> Callable[..., Path]:
    """Write a JSONL transcript under projects/<project>/ with a given mtime."""

    def _write(project: str, name: str, records: list[Any], mtime: float | None = None) -> Path:
        folder = projects_dir / project
        folder.mkdir(exist_ok=True)
        path = folder / name
        with open(path, "w", encoding="utf-8") as f:
            for record in records:
                f.write(record if isinstance(record, str) else json.dumps(record))
                f.write("\n")
        if mtime is not None:
            os.utime(path, (mtime, mtime))
        return path

    return _write


def assistant_record(
    input_tokens: int, cache_creation: int, cache_read: int, model: str | None = "claude-sonnet-4-5-20250929",
) -> dict[str, Any]:
    message: dict[str, Any] = {
        "role": "assistant",
        "content": [{"type": "text", "text": "ok"}],
        "usage": {
            "input_tokens": input_tokens,
            "cache_creation_input_tokens": cache_creation,
            "cache_read_input_tokens": cache_read,
            "output_tokens": 42,
        },
    }
    if model is not None:
        message["model"] = model
    return {"type": "assistant", "message": message, "timestamp": "2026-02-19T10:00:05.000Z"}


@pytest.fixture
def fake_monitor() -> FakeMonitor:
    return FakeMonitor()


@pytest.fixture
def make_engine(write_credentials, fake_monitor) -> Callable[..., TrackingEngine]:
    """Engine with a real credential store and scripted fetcher/scanner."""

    def _make(
        results: list[Any],
        scanner: FakeScanner | None = None,
        creds_path: Path | None = None,
    ) -> TrackingEngine:
        path = creds_path or write_credentials()
        config = EngineConfig(credential_path=str(path))
        return TrackingEngine(
            config,
            store=CredentialStore(path),
            fetcher=FakeFetcher(results),
            scanner=scanner or FakeScanner(),
            monitor=fake_monitor,
            clock=lambda: FIXED_NOW,
        )

    return _make


@pytest.fixture
def auth_error() -> AuthError:
    return AuthError(401)
