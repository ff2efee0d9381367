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
Forward reads: pick up bytes appended after the last known offset and emit
every line as soon as its terminator arrives.
"""

from typing import Awaitable, Callable, List

import structlog

try:
    from line_splitter import Direction, decode_lines, find_split
    from tail_context import TailContext, TailState
except ImportError:
    from .line_splitter import Direction, decode_lines, find_split
    from .tail_context import TailContext, TailState

logger = structlog.get_logger()

LinesCallback = Callable[[List[str]], Awaitable[None]]


class ForwardReader:
    """Reads from ctx.offset up to ctx.size, emitting complete lines per chunk."""

    def __init__(self, ctx: TailContext, emit_lines: LinesCallback):
        self.ctx = ctx
        self.emit_lines = emit_lines

    @property
    def reading(self) -> bool:
        return self.ctx.state is TailState.FORWARD_READING

    async def drain(self) -> None:
        """
        Read until the offset catches up with the known size.

        At most one drain runs per context. A call made while another drain
        is in flight returns immediately; the running drain re-checks the
        size after every chunk and picks up the extra bytes.

        Raises:
            OSError: If a read fails
        """
        ctx = self.ctx
        if self.reading or not ctx.active:
            return

        ctx.transition(TailState.FORWARD_READING)
        try:
            while ctx.offset < ctx.size:
                if not await self._read_chunk():
                    break
                if not ctx.active:
                    return
        finally:
            if ctx.state is TailState.FORWARD_READING:
                ctx.transition(TailState.FORWARD_IDLE)

    async def _read_chunk(self) -> bool:
        """Read one chunk. Returns False when nothing more can be read."""
        ctx = self.ctx
        assert ctx.handle is not None
        chunk = await ctx.handle.read_at(ctx.offset, ctx.options.buffer_size)
        if not ctx.active:
            return False

        if not chunk:
            logger.debug("forward_read_empty", path=str(ctx.path), offset=ctx.offset)
            return False

        buf = ctx.leftover + chunk
        ctx.offset += len(chunk)
        ctx.size = max(ctx.size, ctx.offset)

        split = find_split(buf, Direction.FORWARD)
        if split is None:
            ctx.leftover = buf
            return True

        ctx.leftover = buf[split.right:]
        lines = decode_lines(buf[:split.left], ctx.options.encoding, ctx.options.line_filter)
        if lines:
            await self.emit_lines(lines)
        return True
