"""Polling change notifier for handler files.

A daemon thread compares modification times of the loader's unit files
every *interval* seconds and reports each new or modified file once.
Deleted files are logged; their handlers stay registered.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

from xpapi.infrastructure.loader import DirectoryLoader, HandlerSourceError

logger = logging.getLogger(__name__)


class PollingWatcher:
    """Watch a :class:`DirectoryLoader`'s files and call *on_change* per change.

    Parameters:
        loader: Supplies the file list through ``discover()``.
        on_change: Called with the changed path from the watcher thread.
        interval: Seconds between polls.
    """

    def __init__(
        self,
        loader: DirectoryLoader,
        on_change: Callable[[Path], Any],
        *,
        interval: float = 1.0,
    ) -> None:
        self._loader = loader
        self._on_change = on_change
        self._interval = interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._mtimes: dict[Path, int] = {}

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def snapshot(self) -> dict[Path, int]:
        mtimes: dict[Path, int] = {}
        for path in self._loader.discover():
            try:
                mtimes[path] = path.stat().st_mtime_ns
            except FileNotFoundError:
                continue
        return mtimes

    def prime(self) -> None:
        """Record the current state without reporting anything."""
        self._mtimes = self.snapshot()

    def poll(self) -> list[Path]:
        """Compare against the last snapshot; report and return changed files."""
        try:
            current = self.snapshot()
        except HandlerSourceError as exc:
            logger.warning("%s", exc)
            return []

        changed = [p for p, mtime in current.items() if self._mtimes.get(p) != mtime]
        for path in self._mtimes.keys() - current.keys():
            logger.info("Handler file %s removed; its handlers stay registered", path)
        self._mtimes = current

        for path in changed:
            logger.info("Handler file %s changed", path)
            self._on_change(path)
        return changed

    def start(self) -> None:
        if self.running:
            return
        self.prime()
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="xpapi-watcher", daemon=True)
        self._thread.start()
        logger.debug("Watching %s every %.2fs", self._loader.root, self._interval)

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self.poll()
            except Exception:
                logger.warning("Handler reload failed", exc_info=True)
