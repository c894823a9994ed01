"""Percentage → severity tier."""

from __future__ import annotations

from enum import Enum


class Severity(str, Enum):
    NORMAL = "normal"
    WARNING = "warning"
    CAUTION = "caution"
    CRITICAL = "critical"


SEVERITY_COLORS: dict[Severity, str] = {
    Severity.NORMAL: "#5faf5f",    # green
    Severity.WARNING: "#d7af5f",   # yellow
    Severity.CAUTION: "#d78700",   # orange
    Severity.CRITICAL: "#d75f5f",  # red
}


def classify(pct: float, yellow: float, orange: float, red: float) -> Severity:
    """Classify *pct* against three ascending thresholds.

    The cutoffs are checked in order yellow, orange, red and the first one
    that *pct* falls below wins. Thresholds are not validated: with a
    non-ascending configuration the result is whichever tier's cutoff is hit
    first in that sequence.
    """
    if pct < yellow:
        return Severity.NORMAL
    if pct < orange:
        return Severity.WARNING
    if pct < red:
        return Severity.CAUTION
    return Severity.CRITICAL


def severity_color(severity: Severity) -> str:
    return SEVERITY_COLORS[severity]
