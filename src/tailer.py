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
Tail a file: emit its last lines, then follow appended lines.

Example:
    handle = tail("/var/log/syslog", num_lines=10, watch=True)
    handle.on("line", print)
    handle.on("error", lambda err: print("tail failed:", err))
    ...
    handle.close()
    await handle.wait_closed()

Or as a stream:
    async for line in tail("/var/log/syslog", watch=True):
        ...
"""

import asyncio
from dataclasses import replace
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Coroutine, List, Optional, Set, Union

import structlog
from watchdog.observers.api import BaseObserver

try:
    from async_file import AsyncFile
    from backward_scanner import BackwardScanner
    from change_watcher import ChangeWatcher
    from config import TailOptions
    from errors import (
        CloseFailure,
        OpenFailure,
        ReadFailure,
        StatFailure,
        TailError,
        WatchFailure,
    )
    from events import CLOSE, ERROR, LINE, EventSink
    from forward_reader import ForwardReader
    from line_splitter import Direction
    from tail_context import TailContext, TailState
except ImportError:
    from .async_file import AsyncFile
    from .backward_scanner import BackwardScanner
    from .change_watcher import ChangeWatcher
    from .config import TailOptions
    from .errors import (
        CloseFailure,
        OpenFailure,
        ReadFailure,
        StatFailure,
        TailError,
        WatchFailure,
    )
    from .events import CLOSE, ERROR, LINE, EventSink
    from .forward_reader import ForwardReader
    from .line_splitter import Direction
    from .tail_context import TailContext, TailState

logger = structlog.get_logger()

FILE_REMOVED_MESSAGE = "File deleted or renamed"
FILE_TRUNCATED_MESSAGE = "File truncated"

_STREAM_END = object()


class Tailer:
    """
    Controller owning one TailContext.

    Every mutation of the context happens here, on the event loop thread.
    Work that completes after close() finds the handle detached and does
    nothing.
    """

    def __init__(
        self,
        path: Union[str, Path],
        options: TailOptions,
        sink: EventSink,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.loop = loop or asyncio.get_running_loop()
        self.ctx = TailContext(path=Path(path), options=options)
        self.sink = sink
        self.reader = ForwardReader(self.ctx, self._emit_lines)
        self._tasks: Set[asyncio.Task] = set()
        self._closed = asyncio.Event()

    @property
    def state(self) -> TailState:
        return self.ctx.state

    def start(self) -> None:
        """Schedule open -> stat -> initial dump. Failures arrive as error events."""
        if self.ctx.state is not TailState.IDLE:
            logger.warning("tailer_already_started", path=str(self.ctx.path))
            return
        self.ctx.transition(TailState.OPENING)
        self._spawn(self._run())

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        task = self.loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self) -> None:
        ctx = self.ctx
        try:
            handle = await AsyncFile.open(ctx.path)
        except OSError as e:
            self._fail(OpenFailure(str(e.strerror or e), ctx.path), e)
            return

        if ctx.state is TailState.CLOSED:
            # close() won the race with open; release quietly.
            await self._release_late_handle(handle)
            return

        ctx.handle = handle
        ctx.transition(TailState.STAT)
        logger.debug("tail_opened", path=str(ctx.path))

        try:
            ctx.size = await handle.size()
        except OSError as e:
            self._fail(StatFailure(str(e.strerror or e), ctx.path), e)
            return
        if not ctx.active:
            return

        if ctx.options.num_lines > 0:
            ctx.transition(TailState.BACKWARD)
            try:
                lines = await BackwardScanner(ctx).scan()
            except OSError as e:
                self._fail(ReadFailure(str(e.strerror or e), ctx.path), e)
                return
            if lines is None:
                return
            await self._emit_lines(lines)
            if not ctx.active:
                return

        logger.info(
            "tail_initial_dump_complete",
            path=str(ctx.path),
            size=ctx.size,
            watch=ctx.options.watch,
        )

        if not ctx.options.watch:
            self.close()
            return

        ctx.start_forward()
        self._watch()

    def _watch(self) -> None:
        ctx = self.ctx
        watcher = ChangeWatcher(
            ctx.path,
            on_change=self._schedule_probe,
            on_removed=self._on_removed,
            debounce_interval=ctx.options.debounce_interval,
            loop=self.loop,
        )
        try:
            watcher.start()
        except OSError as e:
            self._fail(WatchFailure(str(e.strerror or e), ctx.path), e)
            return

        ctx.watcher = watcher
        logger.info("watch_started", path=str(ctx.path), offset=ctx.offset)

        # Catch bytes appended between the initial stat and the subscription.
        self._schedule_probe()

    def _schedule_probe(self) -> None:
        if not self.ctx.active:
            return
        self._spawn(self._probe())

    async def _probe(self) -> None:
        """Stat the file and drain newly appended bytes."""
        ctx = self.ctx
        if not ctx.active:
            return

        size = await self._stat()
        if size is None:
            return
        if size < ctx.size:
            # A stat started before another probe or read finished can be stale.
            size = await self._stat()
            if size is None:
                return

        if size < ctx.size:
            logger.warning(
                "file_truncated", path=str(ctx.path), known_size=ctx.size, size=size
            )
            self._fail(WatchFailure(FILE_TRUNCATED_MESSAGE, ctx.path))
            return

        if size == ctx.size:
            return

        ctx.size = size
        if self.reader.reading:
            # The running drain re-checks ctx.size after each chunk.
            return

        try:
            await self.reader.drain()
        except OSError as e:
            self._fail(ReadFailure(str(e.strerror or e), ctx.path), e)

    async def _stat(self) -> Optional[int]:
        """Current file size, or None once the tail has closed or failed."""
        ctx = self.ctx
        assert ctx.handle is not None
        try:
            size = await ctx.handle.size()
        except OSError as e:
            self._fail(StatFailure(str(e.strerror or e), ctx.path), e)
            return None
        if not ctx.active:
            return None
        return size

    def _on_removed(self) -> None:
        ctx = self.ctx
        if not ctx.active:
            return
        logger.warning("file_deleted_or_renamed", path=str(ctx.path))
        self._fail(WatchFailure(FILE_REMOVED_MESSAGE, ctx.path))

    async def _emit_lines(self, lines: List[str]) -> None:
        for line in lines:
            if not self.ctx.active:
                return
            await self.sink.emit(LINE, line)

    def _fail(self, error: TailError, cause: Optional[BaseException] = None) -> None:
        """Report a fatal error once, then close."""
        if self.ctx.state is TailState.CLOSED:
            return
        if cause is not None:
            error.__cause__ = cause

        logger.error(
            "tail_failed",
            path=str(self.ctx.path),
            kind=error.kind,
            error=str(error),
        )
        self._shutdown(error)

    def close(self) -> None:
        """
        Stop tailing. Idempotent, never raises.

        The watcher is stopped and the handle detached immediately; the
        descriptor itself is released in the background.
        """
        if self.ctx.state is TailState.CLOSED:
            return
        self._shutdown(None)

    def _shutdown(self, error: Optional[TailError]) -> None:
        ctx = self.ctx
        was_idle = ctx.state is TailState.IDLE
        ctx.transition(TailState.CLOSED)

        observer = None
        if ctx.watcher is not None:
            observer = ctx.watcher.stop()
            ctx.watcher = None

        handle = ctx.handle
        ctx.handle = None
        ctx.leftover = b""
        ctx.pending = []

        if was_idle:
            self._closed.set()
            return

        self._spawn(self._release(handle, observer, error))

    async def _release(
        self,
        handle: Optional[AsyncFile],
        observer: Optional[BaseObserver],
        error: Optional[TailError],
    ) -> None:
        try:
            if error is not None:
                await self.sink.emit(ERROR, error)

            if observer is not None:
                await asyncio.to_thread(observer.join, 1.0)

            if handle is not None:
                try:
                    await handle.close()
                except OSError as e:
                    close_error = CloseFailure(str(e.strerror or e), self.ctx.path)
                    close_error.__cause__ = e
                    logger.error("tail_close_failed", path=str(self.ctx.path), error=str(e))
                    await self.sink.emit(ERROR, close_error)

            logger.debug("tail_closed", path=str(self.ctx.path))
            await self.sink.emit(CLOSE)
        finally:
            self._closed.set()

    async def _release_late_handle(self, handle: AsyncFile) -> None:
        try:
            await handle.close()
        except OSError as e:
            logger.debug("late_handle_close_failed", path=str(self.ctx.path), error=str(e))

    async def wait_closed(self) -> None:
        """Wait until close() has fully released every resource."""
        await self._closed.wait()


class TailHandle:
    """
    Public handle returned by tail().

    Subscribe with on("line" | "error" | "close", callback), stop with
    close(). Iterating the handle asynchronously yields lines and raises the
    first TailError reported.
    """

    def __init__(self, tailer: Tailer, sink: EventSink):
        self._tailer = tailer
        self._sink = sink

    @property
    def path(self) -> Path:
        return self._tailer.ctx.path

    @property
    def options(self) -> TailOptions:
        return self._tailer.ctx.options

    @property
    def state(self) -> TailState:
        return self._tailer.state

    @property
    def direction(self) -> Direction:
        return self._tailer.ctx.direction

    @property
    def closed(self) -> bool:
        return self._tailer.state is TailState.CLOSED

    def on(self, event: str, callback: Callable[..., Any]) -> "TailHandle":
        self._sink.on(event, callback)
        return self

    def off(self, event: str, callback: Callable[..., Any]) -> "TailHandle":
        self._sink.off(event, callback)
        return self

    def close(self) -> None:
        self._tailer.close()

    async def wait_closed(self) -> None:
        await self._tailer.wait_closed()

    async def __aenter__(self) -> "TailHandle":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.close()
        await self.wait_closed()

    def __aiter__(self) -> AsyncIterator[str]:
        return self._stream()

    async def _stream(self) -> AsyncIterator[str]:
        queue: asyncio.Queue = asyncio.Queue()

        def on_line(line: str) -> None:
            queue.put_nowait(line)

        def on_error(error: TailError) -> None:
            queue.put_nowait(error)

        def on_close() -> None:
            queue.put_nowait(_STREAM_END)

        self.on(LINE, on_line).on(ERROR, on_error).on(CLOSE, on_close)
        try:
            while True:
                item = await queue.get()
                if item is _STREAM_END:
                    return
                if isinstance(item, TailError):
                    raise item
                yield item
        finally:
            self.off(LINE, on_line).off(ERROR, on_error).off(CLOSE, on_close)


def tail(
    path: Union[str, Path],
    options: Optional[TailOptions] = None,
    **overrides: Any,
) -> TailHandle:
    """
    Start tailing *path*.

    Must be called from a coroutine (a running event loop is required). The
    file is opened on the next loop iteration, so subscribers attached right
    after this call receive every event. I/O failures are never raised here;
    they are delivered on the "error" event.

    Args:
        path: File to tail
        options: TailOptions; keyword overrides (num_lines=..., watch=...)
            are applied on top of it

    Raises:
        ValueError: If an option is invalid
        RuntimeError: If no event loop is running
    """
    if options is None:
        options = TailOptions(**overrides)
    elif overrides:
        options = replace(options, **overrides)

    sink = EventSink()
    tailer = Tailer(path, options, sink)
    tailer.start()
    return TailHandle(tailer, sink)
