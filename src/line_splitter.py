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
Line terminator search and decoding shared by the backward and forward phases.

Both LF and CRLF terminate a line. A CR directly before the LF belongs to the
terminator and never reaches decoded output.

Known limitation: chunks are decoded independently, so a multi-byte code point
that straddles a chunk boundary is decoded with replacement characters.
"""

import re
from enum import Enum
from typing import Callable, List, NamedTuple, Optional

LF = b"\n"
CR = b"\r"

_TERMINATOR_RE = re.compile(r"\r?\n")

LineFilter = Callable[[str], bool]


class Direction(Enum):
    """Scan direction of a read phase."""

    BACKWARD = "backward"
    FORWARD = "forward"


class SplitPoint(NamedTuple):
    """Location of a line terminator inside a byte window."""

    left: int
    """Index of the first terminator byte (the CR of a CRLF)."""

    right: int
    """Index just past the LF."""


def find_split(buf: bytes, direction: Direction) -> Optional[SplitPoint]:
    """
    Find the terminator that splits *buf* for the given scan direction.

    Backward scans look for the earliest LF starting at index 1. A LF at
    index 0 is never a split point: it may be the second half of a CRLF whose
    CR sits at the end of the previous (earlier) window.

    Forward scans look for the last LF so that everything before it is made
    of complete lines.

    Returns:
        SplitPoint, or None when no usable terminator exists
    """
    if direction is Direction.FORWARD:
        idx = buf.rfind(LF)
    else:
        idx = buf.find(LF, 1)

    if idx < 0:
        return None

    left = idx - 1 if idx > 0 and buf[idx - 1:idx] == CR else idx
    return SplitPoint(left, idx + 1)


def split_lines(text: str) -> List[str]:
    """Split decoded text on LF or CRLF."""
    return _TERMINATOR_RE.split(text)


def decode_lines(
    data: bytes,
    encoding: str,
    line_filter: Optional[LineFilter] = None,
    drop_trailing_empty: bool = False,
) -> List[str]:
    """
    Decode *data* and split it into lines.

    Args:
        data: Raw bytes, possibly containing terminators
        encoding: Codec used for decoding (undecodable bytes are replaced)
        line_filter: Optional predicate; lines it rejects are dropped
        drop_trailing_empty: Drop the empty string produced when *data* ends
            with a terminator (the end-of-file artifact)

    Returns:
        Lines in file order, terminators stripped
    """
    lines = split_lines(data.decode(encoding, errors="replace"))

    if drop_trailing_empty and lines and lines[-1] == "":
        lines.pop()

    if line_filter is not None:
        lines = [line for line in lines if line_filter(line)]

    return lines
