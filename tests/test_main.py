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
Tests for src/main.py.

Covers:
- setup_logging() for both formats and every level
- build_parser() flag defaults
- Application: printing lines, collecting errors, shutdown
- main() exit codes: 0 success, 1 tail error, 2 configuration error
"""

from __future__ import annotations

import asyncio
import io
import os
from pathlib import Path
from typing import Any, Iterator
from unittest.mock import MagicMock, patch

import pytest
import structlog

from conftest import wait_until
from config import TailConfig, TailOptions
from errors import OpenFailure
from main import Application, build_parser, main, setup_logging
from tail_context import TailState


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep TAIL_* / LOG_* variables and a stray tail.yml out of the tests."""
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ.keys()):
        if key.startswith(("TAIL_", "LOG_", "CONFIG_")):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def quiet_logging() -> Iterator[None]:
    """Discard log output so stdout only carries tailed lines."""
    structlog.configure(logger_factory=structlog.ReturnLoggerFactory())
    yield
    structlog.reset_defaults()


# ============================================================================
# setup_logging Tests
# ============================================================================

class TestSetupLogging:
    """Test logging configuration."""

    def test_setup_logging_console_format(self) -> None:
        setup_logging("info", "console")

    def test_setup_logging_json_format(self) -> None:
        setup_logging("debug", "json")

    @pytest.mark.parametrize("level", ["debug", "info", "warning", "error", "critical"])
    def test_setup_logging_all_levels(self, level: str) -> None:
        setup_logging(level, "console")

    def test_setup_logging_invalid_level(self) -> None:
        # Unknown levels fall back to INFO instead of raising
        setup_logging("chatty", "console")


# ============================================================================
# build_parser Tests
# ============================================================================

class TestBuildParser:
    """Unset flags stay None so lower-priority sources apply."""

    def test_defaults_are_none(self) -> None:
        args = build_parser().parse_args([])
        assert args.path is None
        assert args.num_lines is None
        assert args.watch is None
        assert args.invert_filter is None
        assert args.debounce_interval is None

    def test_flags(self) -> None:
        args = build_parser().parse_args(
            ["app.log", "-n", "3", "-f", "-b", "16", "--filter", "ERR", "-v", "--debounce", "0.1"]
        )
        assert args.path == "app.log"
        assert args.num_lines == 3
        assert args.watch is True
        assert args.buffer_size == 16
        assert args.filter == "ERR"
        assert args.invert_filter is True
        assert args.debounce_interval == 0.1

    def test_version(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["--version"])
        assert exc_info.value.code == 0
        assert capsys.readouterr().out.startswith("filetail ")


# ============================================================================
# Application Tests
# ============================================================================

class TestApplication:
    """Application lifecycle with a real file."""

    @pytest.mark.asyncio
    async def test_run_prints_last_lines(self, make_file: Any) -> None:
        path = make_file("a\nb\nc\n")
        output = io.StringIO()
        app = Application(TailConfig(path=path, options=TailOptions(num_lines=2)), output)

        assert await asyncio.wait_for(app.run(), timeout=5.0) == 0
        assert output.getvalue() == "b\nc\n"

    @pytest.mark.asyncio
    async def test_run_without_path(self) -> None:
        app = Application(TailConfig())
        with pytest.raises(ValueError, match="No file to tail"):
            await app.run()

    @pytest.mark.asyncio
    async def test_run_collects_errors(self, tmp_path: Path) -> None:
        app = Application(TailConfig(path=tmp_path / "missing.log"), io.StringIO())

        assert await asyncio.wait_for(app.run(), timeout=5.0) == 1
        assert len(app.errors) == 1
        assert isinstance(app.errors[0], OpenFailure)

    @pytest.mark.asyncio
    async def test_follow_until_shutdown(self, make_file: Any) -> None:
        path = make_file("")
        output = io.StringIO()
        app = Application(
            TailConfig(path=path, options=TailOptions(num_lines=0, watch=True)), output
        )

        task = asyncio.create_task(app.run())
        await wait_until(
            lambda: app.handle is not None and app.handle.state is TailState.FORWARD_IDLE
        )

        with open(path, "a") as f:
            f.write("followed\n")
        await wait_until(lambda: output.getvalue() == "followed\n")

        app.shutdown_event.set()
        assert await asyncio.wait_for(task, timeout=5.0) == 0
        assert app.handle is not None and app.handle.closed

    @pytest.mark.asyncio
    async def test_stop_without_start_is_safe(self) -> None:
        await Application(TailConfig()).stop()


# ============================================================================
# main() Tests
# ============================================================================

class TestMain:
    """Exit codes of the entry point."""

    @pytest.fixture(autouse=True)
    def no_logging_setup(self) -> Iterator[MagicMock]:
        with patch("main.setup_logging") as mocked:
            yield mocked

    @pytest.mark.asyncio
    async def test_success(self, make_file: Any, capsys: pytest.CaptureFixture[str]) -> None:
        path = make_file("1\n2\n3\n")
        assert await main([str(path), "-n", "2"]) == 0
        assert capsys.readouterr().out == "2\n3\n"

    @pytest.mark.asyncio
    async def test_filter_flag(self, make_file: Any, capsys: pytest.CaptureFixture[str]) -> None:
        path = make_file("INFO a\nERROR b\nINFO c\nERROR d\n")
        assert await main([str(path), "--filter", "^ERROR"]) == 0
        assert capsys.readouterr().out == "ERROR b\nERROR d\n"

    @pytest.mark.asyncio
    async def test_missing_file_exit_code(self, tmp_path: Path) -> None:
        assert await main([str(tmp_path / "missing.log")]) == 1

    @pytest.mark.asyncio
    async def test_invalid_option_exit_code(
        self, make_file: Any, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert await main([str(make_file("x\n")), "-n", "-1"]) == 2
        assert "num_lines" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_missing_config_exit_code(self, tmp_path: Path) -> None:
        assert await main(["x.log", "--config", str(tmp_path / "none.yml")]) == 2

    @pytest.mark.asyncio
    async def test_no_path_exit_code(self) -> None:
        assert await main([]) == 2

    @pytest.mark.asyncio
    async def test_path_from_config_file(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        log = tmp_path / "app.log"
        log.write_text("x\ny\n")
        (tmp_path / "tail.yml").write_text(f"path: {log}\nnum_lines: 1\n")

        assert await main([]) == 0
        assert capsys.readouterr().out == "y\n"
