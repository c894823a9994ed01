"""httpx-based client for the Claude OAuth usage endpoint.

`fetch()` returns the 5-hour and 7-day windows or raises AuthError /
NetworkError / ParseError. It never retries; the engine owns the auth-retry
loop so it can reload credentials between attempts.
"""

from __future__ import annotations

import logging
import re
import threading
from datetime import datetime, timezone
from typing import Any

import httpx
from pydantic import ValidationError

from src.usage_engine.errors import AuthError, NetworkError, ParseError
from src.usage_engine.models import ApiUsageResponse, ApiWindow, Credentials, UsageWindow

logger = logging.getLogger(__name__)

USAGE_API_URL = "https://api.anthropic.com/api/oauth/usage"
ANTHROPIC_BETA = "oauth-2025-04-20"
USER_AGENT = "claude-status/0.1"

_AUTH_STATUSES = {401}
# Epoch values above this are milliseconds (year ~5138 in seconds)
_EPOCH_MS_THRESHOLD = 100_000_000_000
_FRACTION_RE = re.compile(r"\.(\d{6})\d+")


def parse_reset_at(value: Any) -> datetime | None:
    """Normalise a ``resets_at`` value to an aware UTC datetime.

    Numbers are Unix epoch seconds (or milliseconds when implausibly large);
    strings are ISO-8601, with a trailing ``Z`` or an offset, and naive
    strings are taken as UTC. Digit-only strings are read as epochs. ``None``
    means the window has no reset scheduled yet.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ParseError(f"Unexpected resets_at value: {value!r}")

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.isdigit():
            return parse_reset_at(int(text))
        text = _FRACTION_RE.sub(r".\1", text)
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError as e:
            raise ParseError(f"Invalid resets_at timestamp: {value!r}") from e
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)

    if isinstance(value, (int, float)):
        seconds = float(value)
        if seconds > _EPOCH_MS_THRESHOLD:
            seconds /= 1000
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise ParseError(f"Invalid resets_at epoch: {value!r}") from e

    raise ParseError(f"Unexpected resets_at type: {type(value).__name__}")


def _to_window(raw: ApiWindow) -> UsageWindow:
    pct = max(0.0, min(100.0, float(raw.utilization)))
    return UsageWindow(utilization_pct=pct, reset_at=parse_reset_at(raw.resets_at))


def parse_usage_payload(payload: Any) -> tuple[UsageWindow, UsageWindow]:
    """Parse a decoded usage response into (short, long) windows."""
    if not isinstance(payload, dict):
        raise ParseError("Usage API returned a non-object payload")
    try:
        resp = ApiUsageResponse.model_validate(payload)
    except ValidationError as e:
        raise ParseError(f"Unexpected usage payload: {e.error_count()} validation error(s)") from e
    return _to_window(resp.five_hour), _to_window(resp.seven_day)


class RateLimitFetcher:
    """Synchronous httpx client for the usage endpoint.

    One pooled client is kept for the fetcher's lifetime. `close()` may be
    called from another thread to abort an in-flight request.
    """

    def __init__(
        self,
        url: str = USAGE_API_URL,
        timeout: float = 15.0,
        anthropic_beta: str = ANTHROPIC_BETA,
        user_agent: str = USER_AGENT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._anthropic_beta = anthropic_beta
        self._user_agent = user_agent
        self._transport = transport
        self._client: httpx.Client | None = None
        self._lock = threading.Lock()
        self._closed = False

    def _headers(self, credentials: Credentials) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {credentials.bearer_token}",
            "anthropic-beta": self._anthropic_beta,
            "User-Agent": self._user_agent,
            "Accept": "application/json",
        }

    def _get_client(self) -> httpx.Client:
        with self._lock:
            if self._closed:
                raise NetworkError("Fetcher is closed")
            if self._client is None:
                self._client = httpx.Client(timeout=self._timeout, transport=self._transport)
            return self._client

    def fetch(self, credentials: Credentials) -> tuple[UsageWindow, UsageWindow]:
        """GET the usage endpoint and return the (5-hour, 7-day) windows."""
        client = self._get_client()
        try:
            resp = client.get(self._url, headers=self._headers(credentials))
        except httpx.TimeoutException as e:
            raise NetworkError("Usage API request timed out") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Usage API unreachable: {e}") from e
        except RuntimeError as e:
            # httpx raises RuntimeError when the client was closed mid-request
            raise NetworkError(f"Usage API request aborted: {e}") from e

        if resp.status_code in _AUTH_STATUSES:
            raise AuthError(resp.status_code)
        if resp.status_code >= 400:
            raise NetworkError(f"Usage API error {resp.status_code}: {resp.text[:200]}")

        try:
            payload = resp.json()
        except ValueError as e:
            raise ParseError("Usage API returned invalid JSON") from e

        short, long = parse_usage_payload(payload)
        logger.debug(
            "Fetched usage: 5h=%.1f%% 7d=%.1f%%", short.utilization_pct, long.utilization_pct,
        )
        return short, long

    def close(self) -> None:
        with self._lock:
            self._closed = True
            client, self._client = self._client, None
        if client is not None:
            client.close()
