"""Data model for the usage engine.

Plain dataclasses for the values the engine hands to the display layer, plus
pydantic models describing the usage API response.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict

# ── Credentials ──────────────────────────────────────────────────────────────


class PlanTier(str, Enum):
    PRO = "Pro"
    MAX = "Max"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class Credentials:
    """OAuth bearer token read from the Claude Code credentials file."""

    bearer_token: str
    plan_tier: PlanTier
    source_path: Path

    def __repr__(self) -> str:
        # Never leak the token into logs
        return f"Credentials(plan_tier={self.plan_tier.value}, source_path={str(self.source_path)!r})"


# ── Usage windows ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class UsageWindow:
    """One rate-limit window as reported by the usage API."""

    utilization_pct: float
    reset_at: datetime | None  # aware UTC; None until the window starts

    def to_dict(self) -> dict[str, Any]:
        return {
            "utilization_pct": self.utilization_pct,
            "reset_at": self.reset_at.isoformat() if self.reset_at else None,
        }


# ── Context usage ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ContextUsage:
    """Context-window consumption of the most recent assistant turn."""

    tokens_used: int = 0
    window_size: int = 200_000
    model_id: str | None = None
    transcript_path: Path | None = None

    @property
    def percent(self) -> float:
        if self.window_size <= 0:
            return 0.0
        return min(100.0, self.tokens_used / self.window_size * 100)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tokens_used": self.tokens_used,
            "window_size": self.window_size,
            "percent": self.percent,
            "model_id": self.model_id,
            "transcript_path": str(self.transcript_path) if self.transcript_path else None,
        }


# ── Snapshot ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Snapshot:
    """Everything the display layer needs to render one poll tick."""

    credentials_error: bool
    plan_tier: PlanTier
    short: UsageWindow | None
    long: UsageWindow | None
    context: ContextUsage
    last_success: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "credentials_error": self.credentials_error,
            "plan_tier": self.plan_tier.value,
            "short": self.short.to_dict() if self.short else None,
            "long": self.long.to_dict() if self.long else None,
            "context": self.context.to_dict(),
            "last_success": self.last_success.isoformat() if self.last_success else None,
        }


# ── Usage API schema ─────────────────────────────────────────────────────────


class ApiWindow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    utilization: float
    resets_at: str | int | float | None = None


class ApiUsageResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    five_hour: ApiWindow
    seven_day: ApiWindow
