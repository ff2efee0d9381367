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
Per-file tail state.

One TailContext exists per tailed file. It is mutated only by its owning
Tailer on the event loop thread, so it carries no locks.

    IDLE -> OPENING -> STAT -> BACKWARD -> FORWARD_IDLE
    STAT -> FORWARD_IDLE (num_lines == 0)
    FORWARD_IDLE <-> FORWARD_READING
    any state -> CLOSED
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional

try:
    from async_file import AsyncFile
    from config import TailOptions
    from line_splitter import Direction
except ImportError:
    from .async_file import AsyncFile
    from .config import TailOptions
    from .line_splitter import Direction

if TYPE_CHECKING:
    from change_watcher import ChangeWatcher


class TailState(Enum):
    """Lifecycle states of a tail context."""

    IDLE = "idle"
    OPENING = "opening"
    STAT = "stat"
    BACKWARD = "backward"
    FORWARD_IDLE = "forward_idle"
    FORWARD_READING = "forward_reading"
    CLOSED = "closed"


_TRANSITIONS = {
    TailState.IDLE: {TailState.OPENING},
    TailState.OPENING: {TailState.STAT},
    TailState.STAT: {TailState.BACKWARD, TailState.FORWARD_IDLE},
    TailState.BACKWARD: {TailState.FORWARD_IDLE},
    TailState.FORWARD_IDLE: {TailState.FORWARD_READING},
    TailState.FORWARD_READING: {TailState.FORWARD_IDLE},
    TailState.CLOSED: set(),
}


@dataclass
class TailContext:
    """Mutable state of one tailed file."""

    path: Path
    options: TailOptions
    state: TailState = TailState.IDLE
    direction: Direction = Direction.BACKWARD
    handle: Optional[AsyncFile] = None
    watcher: Optional["ChangeWatcher"] = None
    offset: int = 0
    size: int = 0
    leftover: bytes = b""
    pending: List[str] = field(default_factory=list)

    @property
    def active(self) -> bool:
        """False once the handle is detached; continuations check this after every await."""
        return self.state is not TailState.CLOSED and self.handle is not None

    def transition(self, new_state: TailState) -> None:
        """
        Move to *new_state*.

        CLOSED is reachable from anywhere; every other move must follow the
        lifecycle graph.

        Raises:
            RuntimeError: On an illegal transition
        """
        if new_state is TailState.CLOSED:
            self.state = new_state
            return

        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"illegal tail state transition {self.state.value} -> {new_state.value}"
            )
        self.state = new_state

    def start_forward(self) -> None:
        """Switch to forward reading from the last known end of file."""
        self.direction = Direction.FORWARD
        self.offset = self.size
        self.leftover = b""
        self.pending = []
        self.transition(TailState.FORWARD_IDLE)
