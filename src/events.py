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
Observable surface of a tail: ordered "line" events, "error" events and a
final "close" event.
"""

import asyncio
from typing import Any, Callable, Dict, List

import structlog

logger = structlog.get_logger()

LINE = "line"
ERROR = "error"
CLOSE = "close"

EVENTS = (LINE, ERROR, CLOSE)


class EventSink:
    """
    Subscriber registry with in-order delivery.

    Callbacks may be plain functions or coroutine functions; coroutine
    results are awaited before the next event is delivered, which keeps
    lines in file order. A callback that raises is logged and skipped.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[Callable[..., Any]]] = {
            name: [] for name in EVENTS
        }

    def on(self, event: str, callback: Callable[..., Any]) -> None:
        """
        Subscribe *callback* to *event*.

        Raises:
            ValueError: If *event* is not one of line, error, close
        """
        self._check(event)
        self._subscribers[event].append(callback)

    def off(self, event: str, callback: Callable[..., Any]) -> None:
        """Remove a subscription. Unknown callbacks are ignored."""
        self._check(event)
        try:
            self._subscribers[event].remove(callback)
        except ValueError:
            pass

    def listener_count(self, event: str) -> int:
        self._check(event)
        return len(self._subscribers[event])

    async def emit(self, event: str, *args: Any) -> None:
        """Deliver *event* to every current subscriber, in subscription order."""
        self._check(event)
        for callback in list(self._subscribers[event]):
            try:
                result = callback(*args)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(
                    f"{event}_callback_failed",
                    payload=str(args[0])[:100] if args else None,
                    error=str(e),
                    exc_info=True,
                )

    def _check(self, event: str) -> None:
        if event not in self._subscribers:
            raise ValueError(
                f"Unknown event '{event}'. Must be one of: {', '.join(EVENTS)}"
            )
