# Copyright (c) 2025 Stephen Clau

# This file is part of Filetail.

# Filetail is dual-licensed:

# 1. GNU Affero General Public License v3.0 (AGPL-3.0)
#    See LICENSE file for full terms

# 2. Commercial License
#    For proprietary use without AGPL requirements
#    Contact: licensing@laudiversified.com

# SPDX-License-Identifier: AGPL-3.0-only OR Commercial

"""Shared pytest configuration and fixtures for the tail tests."""

import asyncio
import sys
from pathlib import Path
from typing import Any, Callable, List

import pytest

# Add src/ to Python path for absolute imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

pytest_plugins = ['pytest_asyncio']


class Recorder:
    """Collects line / error / close events from a TailHandle."""

    def __init__(self) -> None:
        self.lines: List[str] = []
        self.errors: List[Any] = []
        self.closes = 0
        self._line_event = asyncio.Event()

    def attach(self, handle: Any) -> Any:
        handle.on("line", self.on_line)
        handle.on("error", self.errors.append)
        handle.on("close", self.on_close)
        return handle

    def on_line(self, line: str) -> None:
        self.lines.append(line)
        self._line_event.set()

    def on_close(self) -> None:
        self.closes += 1

    async def wait_for_lines(self, count: int, timeout: float = 5.0) -> List[str]:
        """Wait until at least *count* lines arrived."""

        async def _wait() -> None:
            while len(self.lines) < count:
                self._line_event.clear()
                await self._line_event.wait()

        await asyncio.wait_for(_wait(), timeout=timeout)
        return self.lines


async def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    """Poll *predicate* until it holds or *timeout* expires."""

    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout=timeout)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def make_file(tmp_path: Path) -> Callable[..., Path]:
    """Write bytes or text to a file under tmp_path and return its path."""

    def _make(content: Any, name: str = "test.log") -> Path:
        path = tmp_path / name
        if isinstance(content, str):
            content = content.encode("utf-8")
        path.write_bytes(content)
        return path

    return _make
