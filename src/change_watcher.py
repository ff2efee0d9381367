# Copyright (c) 2025 Stephen Clau

# This file is part of Filetail.

# Filetail is dual-licensed:

# 1. GNU Affero General Public License v3.0 (AGPL-3.0)
#    See LICENSE file for full terms

# 2. Commercial License
#    For proprietary use without AGPL requirements
#    Contact: licensing@laudiversified.com

# SPDX-License-Identifier: AGPL-3.0-only OR Commercial

"""
Filesystem change notifications for a single file.

watchdog observers deliver events on their own thread; the handler hands
them to the event loop with call_soon_threadsafe, where bursts of
modifications are coalesced by a Debouncer before a read is triggered.
"""

import asyncio
import os
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

import structlog
from watchdog.events import (
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

logger = structlog.get_logger()

DEFAULT_DEBOUNCE_INTERVAL = 0.05


class ChangeKind(Enum):
    """What happened to the watched path."""

    MODIFIED = "modified"
    REMOVED = "removed"


def _normalize(path: object) -> str:
    return os.path.normcase(os.path.abspath(os.fsdecode(path)))  # type: ignore[arg-type]


def _resolve(path: object) -> str:
    return os.path.normcase(os.path.realpath(os.fsdecode(path)))  # type: ignore[arg-type]


class Debouncer:
    """
    Single-shot timer that coalesces bursts of triggers.

    trigger() starts the timer unless one is already pending; further
    triggers inside the window are absorbed. The callback runs once when the
    window expires, after the pending flag is cleared.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        interval: float,
        callback: Callable[[], None],
    ):
        self.loop = loop
        self.interval = interval
        self.callback = callback
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self) -> bool:
        """Start the timer. Returns False if one was already pending."""
        if self._handle is not None:
            return False
        self._handle = self.loop.call_later(self.interval, self._fire)
        return True

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self.callback()


class _PathEventHandler(FileSystemEventHandler):
    """Filters directory events down to the watched file (observer thread)."""

    def __init__(self, watcher: "ChangeWatcher"):
        super().__init__()
        self.watcher = watcher

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return

        kind = self.watcher.classify(event)
        if kind is not None:
            self.watcher.post(kind)


class ChangeWatcher:
    """
    Watches one file and reports modifications and removals.

    The parent directory is watched, since a deleted or renamed file can only
    be observed from its directory on every platform watchdog supports.

    A symlinked path is followed: writes are observed in the directory of the
    resolved file, while the link's own directory is also watched so that
    removing or renaming either the link or the file is reported.
    """

    def __init__(
        self,
        path: Path,
        on_change: Callable[[], None],
        on_removed: Callable[[], None],
        debounce_interval: float = DEFAULT_DEBOUNCE_INTERVAL,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        """
        Initialize change watcher.

        Args:
            path: File to watch
            on_change: Called on the loop once per debounced burst of modifications
            on_removed: Called on the loop when the file is deleted or renamed
            debounce_interval: Seconds to coalesce modifications
            loop: Event loop to deliver on (default: the running loop)
        """
        self.path = Path(path)
        self.on_change = on_change
        self.on_removed = on_removed
        self.loop = loop or asyncio.get_running_loop()
        self.debouncer = Debouncer(self.loop, debounce_interval, self._debounced)
        self._link = _normalize(self.path)
        self._target = _resolve(self.path)
        self._removable = {self._link, self._target}
        self._observer: Optional[Observer] = None
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._observer is not None and not self._stopped

    def start(self) -> None:
        """
        Subscribe to notifications.

        Raises:
            OSError: If the directory cannot be watched
        """
        if self._observer is not None:
            logger.warning("change_watcher_already_running", path=str(self.path))
            return

        observer = Observer()
        handler = _PathEventHandler(self)
        for directory in sorted({os.path.dirname(p) for p in self._removable}):
            observer.schedule(handler, directory, recursive=False)
        observer.daemon = True
        observer.start()
        self._observer = observer

        logger.debug(
            "change_watcher_started",
            path=str(self.path),
            target=self._target,
            debounce_interval=self.debouncer.interval,
        )

    def stop(self) -> Optional[Observer]:
        """
        Unsubscribe. Idempotent.

        Returns:
            The stopped observer so the caller can join its thread off-loop,
            or None if nothing was running
        """
        if self._stopped:
            return None
        self._stopped = True
        self.debouncer.cancel()

        observer = self._observer
        if observer is None:
            return None

        observer.stop()
        logger.debug("change_watcher_stopped", path=str(self.path))
        return observer

    def classify(self, event: FileSystemEvent) -> Optional[ChangeKind]:
        """Map a watchdog event to a change of the watched file, if it is one."""
        src = _normalize(event.src_path)

        if isinstance(event, FileMovedEvent):
            if src in self._removable or _normalize(event.dest_path) in self._removable:
                return ChangeKind.REMOVED
            return None

        if src not in self._removable:
            return None

        if isinstance(event, FileDeletedEvent):
            return ChangeKind.REMOVED
        if isinstance(event, FileModifiedEvent):
            return ChangeKind.MODIFIED
        return None

    def post(self, kind: ChangeKind) -> None:
        """Hand a change over to the event loop. Safe from any thread."""
        try:
            self.loop.call_soon_threadsafe(self.notify, kind)
        except RuntimeError:
            # Loop already closed; nothing is left to deliver to.
            logger.debug("change_watcher_loop_closed", path=str(self.path))

    def notify(self, kind: ChangeKind) -> None:
        """Handle a change on the loop thread."""
        if self._stopped:
            return

        if kind is ChangeKind.REMOVED:
            self.debouncer.cancel()
            self.on_removed()
            return

        self.debouncer.trigger()

    def _debounced(self) -> None:
        if not self._stopped:
            self.on_change()
