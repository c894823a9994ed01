"""Tracking engine — ties credentials, fetcher, scanner and monitor together.

One `poll()` call is one tick:

1. consume the credentials-file change flag and rescan the active
   transcript (a single critical section)
2. make sure credentials are loaded
3. fetch the usage windows, reloading credentials and retrying on auth
   failures (at most MAX_AUTH_RETRIES retries, so at most 3 requests)
4. assemble a Snapshot for the display layer

Network and parse failures keep the last good windows on screen; they are
retried naturally on the next tick. Credential failures and exhausted auth
retries flip the single `credentials_error` flag.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from src.usage_engine.classifier import Severity, classify
from src.usage_engine.credentials import DEFAULT_CREDENTIALS_PATH, CredentialStore
from src.usage_engine.errors import AuthError, CredentialError, FetchError
from src.usage_engine.fetcher import RateLimitFetcher
from src.usage_engine.models import ContextUsage, Credentials, Snapshot, UsageWindow
from src.usage_engine.monitor import CredentialsMonitor
from src.usage_engine.transcript import ContextScanner

logger = logging.getLogger(__name__)

MAX_AUTH_RETRIES = 2


class UsageFetcher(Protocol):
    def fetch(self, credentials: Credentials) -> tuple[UsageWindow, UsageWindow]: ...

    def close(self) -> None: ...


class ContextSource(Protocol):
    def scan(self) -> ContextUsage: ...


class ChangeMonitor(Protocol):
    @property
    def changed(self) -> bool: ...

    def start(self, path: str | Path) -> None: ...

    def stop(self) -> None: ...

    def consume_changed(self) -> bool: ...


@dataclass
class EngineConfig:
    """Runtime-mutable engine settings."""

    poll_interval_seconds: int = 30
    yellow_threshold: float = 25
    orange_threshold: float = 50
    red_threshold: float = 75
    credential_path: str = DEFAULT_CREDENTIALS_PATH
    projects_dir: str | None = None  # None → ~/.claude/projects

    @classmethod
    def from_settings(cls, settings: Any) -> EngineConfig:
        return cls(
            poll_interval_seconds=settings.poll_interval_seconds,
            yellow_threshold=settings.yellow_threshold,
            orange_threshold=settings.orange_threshold,
            red_threshold=settings.red_threshold,
            credential_path=settings.credentials_path,
            projects_dir=settings.projects_dir,
        )


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TrackingEngine:
    """Owns the usage state and produces a Snapshot on every poll."""

    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        store: CredentialStore | None = None,
        fetcher: UsageFetcher | None = None,
        scanner: ContextSource | None = None,
        monitor: ChangeMonitor | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.config = config or EngineConfig()
        self._store = store or CredentialStore(self.config.credential_path)
        self._fetcher = fetcher or RateLimitFetcher()
        self._scanner = scanner or ContextScanner(self.config.projects_dir)
        self._monitor = monitor if monitor is not None else CredentialsMonitor()
        self._clock = clock

        # Last good state; replaced in place, never accumulated
        self._short: UsageWindow | None = None
        self._long: UsageWindow | None = None
        self._context = ContextUsage()
        self._last_success: datetime | None = None
        self._credentials_error = False
        self._auth_retry_count = 0

        self._busy = threading.Lock()
        self._state_lock = threading.Lock()
        self._scan_lock = threading.Lock()
        self._dispatch_lock = threading.Lock()
        self._cancelled = threading.Event()
        self._executor: ThreadPoolExecutor | None = None
        self._pending: Future[Snapshot] | None = None

    @classmethod
    def from_settings(cls, settings: Any, **kwargs: Any) -> TrackingEngine:
        """Build an engine wired to the usage API described by *settings*."""
        kwargs.setdefault(
            "fetcher",
            RateLimitFetcher(
                url=settings.usage_api_url,
                timeout=settings.request_timeout,
                anthropic_beta=settings.anthropic_beta,
                user_agent=settings.user_agent,
            ),
        )
        return cls(EngineConfig.from_settings(settings), **kwargs)

    # ── State accessors ──────────────────────────────────────────────────

    @property
    def credentials_error(self) -> bool:
        return self._credentials_error

    @property
    def auth_retry_count(self) -> int:
        return self._auth_retry_count

    @property
    def busy(self) -> bool:
        return self._busy.locked()

    def snapshot(self) -> Snapshot:
        """Current state without polling."""
        plan_tier = self._store.plan_tier
        with self._state_lock:
            return Snapshot(
                credentials_error=self._credentials_error,
                plan_tier=plan_tier,
                short=self._short,
                long=self._long,
                context=self._context,
                last_success=self._last_success,
            )

    def classify(self, pct: float) -> Severity:
        """Severity of *pct* under the current thresholds."""
        return classify(
            pct,
            self.config.yellow_threshold,
            self.config.orange_threshold,
            self.config.red_threshold,
        )

    def credentials_changed(self) -> bool:
        """Peek at the monitor flag without consuming it."""
        return bool(self._monitor.changed)

    # ── Configuration ────────────────────────────────────────────────────

    def set_poll_interval(self, seconds: int) -> None:
        if seconds <= 0:
            raise ValueError(f"Poll interval must be positive, got {seconds}")
        self.config.poll_interval_seconds = seconds

    def set_thresholds(self, yellow: float, orange: float, red: float) -> None:
        self.config.yellow_threshold = yellow
        self.config.orange_threshold = orange
        self.config.red_threshold = red

    def set_credential_path(self, path: str) -> None:
        """Read credentials from *path* from now on and watch it instead."""
        self.config.credential_path = path
        with self._scan_lock:
            self._store.set_path(path)
            with self._state_lock:
                self._credentials_error = False
            if not self._cancelled.is_set():
                self._monitor.start(self._store.path)
        logger.info("Credentials path set to %s", self._store.path)

    # ── Lifecycle ────────────────────────────────────────────────────────

    def start(self) -> None:
        """Start watching the credentials file."""
        self._monitor.start(self._store.path)

    def shutdown(self) -> None:
        """Cancel in-flight work and stop the file monitor."""
        self._cancelled.set()
        with self._dispatch_lock:
            if self._pending is not None:
                self._pending.cancel()
                self._pending = None
            executor, self._executor = self._executor, None
        self._fetcher.close()
        self._monitor.stop()
        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)
        logger.info("Tracking engine shut down")

    # ── Polling ──────────────────────────────────────────────────────────

    def poll(self) -> Snapshot:
        """Run one tick and return the resulting snapshot.

        If a tick is already running on another thread this returns the
        current snapshot without starting a second fetch.
        """
        if not self._busy.acquire(blocking=False):
            logger.debug("Poll skipped: a fetch is already in flight")
            return self.snapshot()
        try:
            with self._scan_lock:
                if self._monitor.consume_changed():
                    logger.info("Credentials file changed; reloading on this tick")
                    with self._state_lock:
                        self._credentials_error = False
                    self._store.invalidate()
                context = self._scanner.scan()
                with self._state_lock:
                    self._context = context

            if not self._cancelled.is_set():
                self._fetch_usage()
            return self.snapshot()
        finally:
            self._busy.release()

    def poll_async(self, on_done: Callable[[Snapshot], Any] | None = None) -> Future[Snapshot] | None:
        """Run `poll()` on the worker thread.

        Returns None (and starts nothing) while a previous tick is still
        outstanding or after shutdown. *on_done* receives the snapshot unless
        the engine was shut down in the meantime.
        """
        with self._dispatch_lock:
            if self._cancelled.is_set():
                return None
            if self._pending is not None and not self._pending.done():
                logger.debug("Tick skipped: previous fetch still outstanding")
                return None
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="usage-fetch")
            future = self._executor.submit(self.poll)
            self._pending = future

        if on_done is not None:
            future.add_done_callback(lambda f: self._deliver(f, on_done))
        return future

    def _deliver(self, future: Future[Snapshot], on_done: Callable[[Snapshot], Any]) -> None:
        if self._cancelled.is_set() or future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Poll failed: %s", exc, exc_info=exc)
            return
        on_done(future.result())

    def _enter_credentials_error(self, reason: str) -> None:
        with self._state_lock:
            if not self._credentials_error:
                logger.warning("Credentials error: %s", reason)
            self._credentials_error = True
            self._auth_retry_count = 0

    def _fetch_usage(self) -> None:
        """Fetch both windows, applying the bounded auth-retry loop.

        The retry budget lives in this call only; `auth_retry_count` mirrors
        it for observers, so config changes mid-tick cannot extend it.
        """
        retries = 0
        self._auth_retry_count = 0
        try:
            creds = self._store.ensure_loaded()
        except CredentialError as e:
            self._enter_credentials_error(str(e))
            return

        while True:
            try:
                short, long = self._fetcher.fetch(creds)
            except AuthError as e:
                if self._cancelled.is_set():
                    return
                if retries >= MAX_AUTH_RETRIES:
                    self._enter_credentials_error(f"{e} after {MAX_AUTH_RETRIES} retries")
                    return
                retries += 1
                self._auth_retry_count = retries
                logger.info(
                    "Usage API rejected token, reloading credentials (retry %d/%d)",
                    retries, MAX_AUTH_RETRIES,
                )
                try:
                    creds = self._store.reload()
                except CredentialError as reload_err:
                    self._enter_credentials_error(str(reload_err))
                    return
                continue
            except FetchError as e:
                if not self._cancelled.is_set():
                    logger.warning("Usage fetch failed, keeping last data: %s", e)
                return

            if self._cancelled.is_set():
                return
            now = self._clock()
            with self._state_lock:
                self._short = short
                self._long = long
                self._credentials_error = False
                self._auth_retry_count = 0
                self._last_success = now
            return
