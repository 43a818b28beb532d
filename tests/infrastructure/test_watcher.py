"""Tests for the polling handler-file watcher."""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Any

import pytest

from xpapi.infrastructure.loader import DirectoryLoader
from xpapi.infrastructure.watcher import PollingWatcher


def _bump(path: Path) -> None:
    """Move the file's mtime forward so the change is visible on coarse clocks."""
    stat = path.stat()
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 2_000_000_000))


@pytest.fixture
def loader(handler_dir: Path) -> DirectoryLoader:
    return DirectoryLoader(handler_dir, multi=True)


class TestPoll:
    def test_first_poll_reports_everything(self, loader: DirectoryLoader) -> None:
        seen: list[Path] = []
        watcher = PollingWatcher(loader, seen.append)
        assert len(watcher.poll()) == 2
        assert len(seen) == 2

    def test_primed_poll_reports_nothing(self, loader: DirectoryLoader) -> None:
        seen: list[Path] = []
        watcher = PollingWatcher(loader, seen.append)
        watcher.prime()
        assert watcher.poll() == []
        assert seen == []

    def test_modified_file_reported_once(self, loader: DirectoryLoader, handler_dir: Path) -> None:
        seen: list[Path] = []
        watcher = PollingWatcher(loader, seen.append)
        watcher.prime()
        target = (handler_dir / "example.py").resolve()
        _bump(target)
        assert watcher.poll() == [target]
        assert watcher.poll() == []
        assert seen == [target]

    def test_new_file_reported(
        self, loader: DirectoryLoader, handler_dir: Path, write_py: Any
    ) -> None:
        watcher = PollingWatcher(loader, lambda path: None)
        watcher.prime()
        added = write_py(handler_dir / "admin" / "more.py", "HANDLERS = []\n")
        assert watcher.poll() == [added.resolve()]

    def test_removed_file_logged(
        self,
        loader: DirectoryLoader,
        handler_dir: Path,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        watcher = PollingWatcher(loader, lambda path: None)
        watcher.prime()
        (handler_dir / "admin" / "tools.py").unlink()
        with caplog.at_level(logging.INFO, logger="xpapi"):
            assert watcher.poll() == []
        assert "stay registered" in caplog.text

    def test_missing_directory_is_a_warning(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        watcher = PollingWatcher(DirectoryLoader(tmp_path / "gone"), lambda path: None)
        with caplog.at_level(logging.WARNING, logger="xpapi"):
            assert watcher.poll() == []
        assert "Unable to open handler directory" in caplog.text


class TestThread:
    def test_start_and_stop(self, loader: DirectoryLoader, handler_dir: Path) -> None:
        changed = threading.Event()
        watcher = PollingWatcher(loader, lambda path: changed.set(), interval=0.01)
        watcher.start()
        try:
            assert watcher.running
            _bump(handler_dir / "example.py")
            assert changed.wait(5)
        finally:
            watcher.stop()
        assert not watcher.running

    def test_callback_errors_do_not_kill_thread(
        self, loader: DirectoryLoader, handler_dir: Path
    ) -> None:
        calls: list[Path] = []
        first = threading.Event()
        second = threading.Event()

        def on_change(path: Path) -> None:
            calls.append(path)
            if len(calls) == 1:
                first.set()
                raise RuntimeError("reload failed")
            second.set()

        watcher = PollingWatcher(loader, on_change, interval=0.01)
        watcher.start()
        try:
            _bump(handler_dir / "example.py")
            assert first.wait(5)
            _bump(handler_dir / "example.py")
            assert second.wait(5)
        finally:
            watcher.stop()
        assert watcher.running is False
