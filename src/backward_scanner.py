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
Backward scan: recover the last N lines by reading fixed-size windows from
the end of the file toward its start.
"""

from typing import List, Optional

import structlog

try:
    from line_splitter import Direction, decode_lines, find_split
    from tail_context import TailContext
except ImportError:
    from .line_splitter import Direction, decode_lines, find_split
    from .tail_context import TailContext

logger = structlog.get_logger()


class BackwardScanner:
    """
    Walks a file backward window by window until enough lines are found.

    Lines are accumulated in ctx.pending (oldest first) and only handed back
    once the scan stops, since the scan discovers them newest first.
    """

    def __init__(self, ctx: TailContext):
        self.ctx = ctx
        self.buffer_size = ctx.options.buffer_size
        self.num_lines = ctx.options.num_lines
        self._at_file_end = True

    async def scan(self) -> Optional[List[str]]:
        """
        Run the scan to completion.

        Returns:
            The last num_lines lines in file order, or None if the context
            was closed while a read was in flight

        Raises:
            OSError: If a read fails
        """
        ctx = self.ctx
        ctx.leftover = b""
        ctx.pending = []

        end = ctx.size
        start = max(end - self.buffer_size, 0)

        while True:
            assert ctx.handle is not None
            chunk = await ctx.handle.read_at(start, end - start)
            if not ctx.active:
                return None

            has_end = start == 0
            self._consume(chunk, has_end)

            if has_end or len(ctx.pending) >= self.num_lines:
                break

            end = start
            start = max(end - self.buffer_size, 0)

        lines = ctx.pending[-self.num_lines:] if self.num_lines else []
        ctx.pending = []
        ctx.leftover = b""

        logger.debug(
            "backward_scan_complete",
            path=str(ctx.path),
            lines=len(lines),
            stopped_at=start,
        )
        return lines

    def _consume(self, chunk: bytes, has_end: bool) -> None:
        """Prepend *chunk* to the leftover bytes and harvest complete lines."""
        ctx = self.ctx
        buf = chunk + ctx.leftover

        if has_end:
            ctx.leftover = b""
            self._prepend(buf)
            return

        split = find_split(buf, Direction.BACKWARD)
        if split is None:
            ctx.leftover = buf
            return

        ctx.leftover = buf[:split.left]
        self._prepend(buf[split.right:])

    def _prepend(self, data: bytes) -> None:
        lines = decode_lines(
            data,
            self.ctx.options.encoding,
            self.ctx.options.line_filter,
            drop_trailing_empty=self._at_file_end,
        )
        self._at_file_end = False
        if lines:
            self.ctx.pending = lines + self.ctx.pending
