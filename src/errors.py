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
Error kinds reported on a tail handle's error channel.

Nothing here is raised out of tail(); the controller wraps the underlying
OSError (kept as __cause__) and emits it as an "error" event.
"""

from pathlib import Path
from typing import Optional, Union


class TailError(Exception):
    """Base class for every failure reported by a tail handle."""

    kind = "tail"

    def __init__(self, message: str, path: Optional[Union[str, Path]] = None):
        super().__init__(message)
        self.message = message
        self.path = Path(path) if path is not None else None

    def __str__(self) -> str:
        if self.path is None:
            return self.message
        return f"{self.message}: {self.path}"


class OpenFailure(TailError):
    """The file could not be opened."""

    kind = "open"


class StatFailure(TailError):
    """fstat() on the open descriptor failed."""

    kind = "stat"


class ReadFailure(TailError):
    """A chunk read failed."""

    kind = "read"


class CloseFailure(TailError):
    """Releasing the descriptor failed. The handle is detached regardless."""

    kind = "close"


class WatchFailure(TailError):
    """The file was deleted, renamed, truncated, or could not be watched."""

    kind = "watch"
