"""Credentials file monitor — raises a one-shot flag when the file changes.

Claude Code rewrites ``.credentials.json`` whenever it refreshes its OAuth
token. Watching it lets the engine pick up a fresh token straight away
instead of waiting for the next 401. The watchdog callback only flips a
flag; the engine reads and clears it with `consume_changed()` on its own
schedule.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)


class _CredentialsEventHandler(FileSystemEventHandler):
    """Forwards create/modify/move-onto events for a single file."""

    def __init__(self, target: Path, monitor: CredentialsMonitor) -> None:
        super().__init__()
        self._target = os.path.normcase(str(target))
        self._monitor = monitor

    def _matches(self, raw_path: str | bytes) -> bool:
        return os.path.normcase(os.fsdecode(raw_path)) == self._target

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory and self._matches(event.src_path):
            self._monitor.mark_changed()

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory and self._matches(event.src_path):
            self._monitor.mark_changed()

    def on_moved(self, event: FileSystemEvent) -> None:
        # Atomic writers rename a temp file onto the target
        dest = getattr(event, "dest_path", "")
        if not event.is_directory and dest and self._matches(dest):
            self._monitor.mark_changed()


class CredentialsMonitor:
    """Watches one file path and exposes a consume-once "changed" flag."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._changed = False
        self._observer: Observer | None = None
        self._path: Path | None = None

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def running(self) -> bool:
        return self._observer is not None

    def start(self, path: str | Path) -> None:
        """Start watching *path*, cancelling any previous watch first."""
        self.stop()

        target = Path(path).expanduser().absolute()
        parent = target.parent
        if not parent.is_dir():
            logger.warning("Not watching %s: directory %s does not exist", target, parent)
            return

        observer = Observer()
        observer.schedule(_CredentialsEventHandler(target, self), str(parent), recursive=False)
        observer.daemon = True
        try:
            observer.start()
        except OSError as e:
            logger.warning("Could not watch %s: %s", target, e)
            return

        self._observer = observer
        self._path = target
        logger.info("Watching credentials file %s", target)

    def stop(self) -> None:
        """Stop watching. Safe to call when not running."""
        observer = self._observer
        if observer is None:
            return
        self._observer = None
        observer.stop()
        observer.join(timeout=2.0)
        logger.debug("Stopped watching %s", self._path)
        self._path = None

    @property
    def changed(self) -> bool:
        with self._lock:
            return self._changed

    def mark_changed(self) -> None:
        with self._lock:
            self._changed = True

    def consume_changed(self) -> bool:
        """Return whether the file changed since the last call, clearing the flag."""
        with self._lock:
            changed = self._changed
            self._changed = False
        return changed
