# Copyright (c) 2025 Stephen Clau

# This file is part of Filetail.

# Filetail is dual-licensed:

# 1. GNU Affero General Public License v3.0 (AGPL-3.0)
#    See LICENSE file for full terms

# 2. Commercial License
#    For proprietary use without AGPL requirements
#    Contact: licensing@laudiversified.com

# SPDX-License-Identifier: AGPL-3.0-only OR Commercial

"""Tests for line_splitter.py terminator search and decoding."""

import pytest

from line_splitter import (
    Direction,
    SplitPoint,
    decode_lines,
    find_split,
    split_lines,
)


# ============================================================================
# find_split() - backward
# ============================================================================

class TestFindSplitBackward:
    """Backward scans use the earliest LF at index >= 1."""

    def test_finds_first_lf(self) -> None:
        assert find_split(b"ab\ncd\nef", Direction.BACKWARD) == SplitPoint(2, 3)

    def test_skips_lf_at_index_zero(self) -> None:
        assert find_split(b"\nab\ncd", Direction.BACKWARD) == SplitPoint(3, 4)

    def test_lone_lf_at_index_zero_is_no_split(self) -> None:
        assert find_split(b"\nabc", Direction.BACKWARD) is None

    def test_crlf_left_points_at_cr(self) -> None:
        assert find_split(b"ab\r\ncd", Direction.BACKWARD) == SplitPoint(2, 4)

    def test_crlf_at_start(self) -> None:
        assert find_split(b"\r\nab", Direction.BACKWARD) == SplitPoint(0, 2)

    def test_no_terminator(self) -> None:
        assert find_split(b"abcdef", Direction.BACKWARD) is None

    def test_empty_buffer(self) -> None:
        assert find_split(b"", Direction.BACKWARD) is None


# ============================================================================
# find_split() - forward
# ============================================================================

class TestFindSplitForward:
    """Forward scans use the last LF."""

    def test_finds_last_lf(self) -> None:
        assert find_split(b"ab\ncd\nef", Direction.FORWARD) == SplitPoint(5, 6)

    def test_lf_at_index_zero_is_usable(self) -> None:
        assert find_split(b"\nabc", Direction.FORWARD) == SplitPoint(0, 1)

    def test_crlf_left_points_at_cr(self) -> None:
        assert find_split(b"ab\r\ncd\r\n", Direction.FORWARD) == SplitPoint(6, 8)

    def test_trailing_cr_without_lf_is_not_a_terminator(self) -> None:
        assert find_split(b"ab\ncd\r", Direction.FORWARD) == SplitPoint(2, 3)

    def test_no_terminator(self) -> None:
        assert find_split(b"partial", Direction.FORWARD) is None


# ============================================================================
# split_lines() / decode_lines()
# ============================================================================

class TestSplitLines:
    """Tests for split_lines()."""

    def test_lf_and_crlf_are_equivalent(self) -> None:
        assert split_lines("a\nb\r\nc") == ["a", "b", "c"]

    def test_lone_cr_is_kept(self) -> None:
        assert split_lines("a\rb\nc") == ["a\rb", "c"]

    def test_trailing_terminator_yields_empty_tail(self) -> None:
        assert split_lines("a\n") == ["a", ""]


class TestDecodeLines:
    """Tests for decode_lines()."""

    def test_decodes_utf8(self) -> None:
        assert decode_lines("héllo\r\nwörld".encode("utf-8"), "utf-8") == ["héllo", "wörld"]

    def test_other_encoding(self) -> None:
        assert decode_lines("café\n".encode("latin-1"), "latin-1") == ["café", ""]

    def test_drop_trailing_empty(self) -> None:
        assert decode_lines(b"a\nb\n", "utf-8", drop_trailing_empty=True) == ["a", "b"]

    def test_drop_trailing_empty_only_drops_one(self) -> None:
        assert decode_lines(b"a\n\n", "utf-8", drop_trailing_empty=True) == ["a", ""]

    def test_drop_trailing_empty_on_empty_data(self) -> None:
        assert decode_lines(b"", "utf-8", drop_trailing_empty=True) == []

    def test_keeps_non_empty_tail(self) -> None:
        assert decode_lines(b"a\nb", "utf-8", drop_trailing_empty=True) == ["a", "b"]

    def test_filter_applied(self) -> None:
        lines = decode_lines(b"keep 1\ndrop\nkeep 2", "utf-8", lambda l: l.startswith("keep"))
        assert lines == ["keep 1", "keep 2"]

    def test_invalid_bytes_are_replaced(self) -> None:
        lines = decode_lines(b"ok\n\xff\xfe", "utf-8")
        assert lines[0] == "ok"
        assert "�" in lines[1]

    @pytest.mark.parametrize("data", [b"x\ny", b"x\r\ny"])
    def test_terminators_never_leak(self, data: bytes) -> None:
        for line in decode_lines(data, "utf-8"):
            assert "\n" not in line
            assert "\r" not in line
