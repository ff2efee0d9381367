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
Read-only file descriptor whose blocking calls run in a worker thread.
"""

import asyncio
import os
from pathlib import Path
from typing import Optional, Union


def _read_at(fd: int, length: int, offset: int) -> bytes:
    if hasattr(os, "pread"):
        return os.pread(fd, length, offset)
    # Windows has no pread; a descriptor is only ever read by one task.
    os.lseek(fd, offset, os.SEEK_SET)
    return os.read(fd, length)


class AsyncFile:
    """
    Exclusively owned OS file descriptor opened for reading.

    All methods propagate OSError; the caller decides how to report it.
    """

    def __init__(self, path: Union[str, Path], fd: int):
        self.path = Path(path)
        self.fd: Optional[int] = fd

    @classmethod
    async def open(cls, path: Union[str, Path]) -> "AsyncFile":
        """Open *path* read-only without blocking the event loop."""
        flags = os.O_RDONLY | getattr(os, "O_BINARY", 0)
        fd = await asyncio.to_thread(os.open, str(path), flags)
        return cls(path, fd)

    @property
    def closed(self) -> bool:
        return self.fd is None

    async def size(self) -> int:
        """Return the current size reported by fstat()."""
        fd = self._require_fd()
        stat = await asyncio.to_thread(os.fstat, fd)
        return stat.st_size

    async def read_at(self, offset: int, length: int) -> bytes:
        """Read up to *length* bytes starting at *offset*."""
        fd = self._require_fd()
        if length <= 0:
            return b""
        return await asyncio.to_thread(_read_at, fd, length, offset)

    async def close(self) -> None:
        """Release the descriptor. Safe to call more than once."""
        fd = self.fd
        if fd is None:
            return
        self.fd = None
        await asyncio.to_thread(os.close, fd)

    def _require_fd(self) -> int:
        if self.fd is None:
            raise OSError(f"file descriptor already released: {self.path}")
        return self.fd
