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
Filetail - command line entry point.

Prints the last lines of a file to stdout and optionally follows it, like
`tail -n N [-f] PATH`. Diagnostics go to stderr through structlog.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Any, List, Optional, TextIO

import structlog

try:
    from .config import TailConfig, load_config  # type: ignore
    from .errors import TailError  # type: ignore
    from .tailer import TailHandle, tail  # type: ignore
except ImportError:
    from config import TailConfig, load_config  # type: ignore
    from errors import TailError  # type: ignore
    from tailer import TailHandle, tail  # type: ignore

logger = structlog.get_logger()


def setup_logging(log_level: str, log_format: str) -> None:
    """
    Configure structured logging.

    Args:
        log_level: Logging level (debug, info, warning, error, critical)
        log_format: Output format ("json" or "console")
    """
    level_map: dict[str, int] = {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
        "critical": logging.CRITICAL,
    }

    min_level = level_map.get(log_level.lower(), logging.INFO)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    # stdout carries the tailed lines.
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(min_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    logger.debug("logging_configured", level=log_level, format=log_format)


def package_version() -> str:
    try:
        return version("filetail")
    except PackageNotFoundError:
        # Package not installed, fallback for development
        return "dev"


def build_parser() -> argparse.ArgumentParser:
    """Command line flags. Unset flags fall back to env vars, tail.yml, then defaults."""
    parser = argparse.ArgumentParser(
        prog="filetail",
        description="Print the last lines of a file and optionally follow it",
    )
    parser.add_argument("path", nargs="?", default=None, help="File to tail")
    parser.add_argument(
        "-n", "--lines",
        dest="num_lines",
        type=int,
        default=None,
        help="Number of lines to print from the end (default: 10)",
    )
    parser.add_argument(
        "-f", "--follow",
        dest="watch",
        action="store_true",
        default=None,
        help="Keep printing lines appended to the file",
    )
    parser.add_argument(
        "-b", "--buffer-size",
        dest="buffer_size",
        type=int,
        default=None,
        help="Bytes per read (default: 1024)",
    )
    parser.add_argument("--encoding", default=None, help="Text encoding (default: utf-8)")
    parser.add_argument("--filter", default=None, help="Only print lines matching this regex")
    parser.add_argument(
        "-v", "--invert-filter",
        dest="invert_filter",
        action="store_true",
        default=None,
        help="Print lines NOT matching --filter",
    )
    parser.add_argument(
        "--debounce",
        dest="debounce_interval",
        type=float,
        default=None,
        help="Seconds to coalesce change notifications (default: 0.05)",
    )
    parser.add_argument("--config", default=None, help="Path to tail.yml")
    parser.add_argument("--log-level", dest="log_level", default=None)
    parser.add_argument("--log-format", dest="log_format", default=None)
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {package_version()}"
    )
    return parser


class Application:
    """Runs one tail and prints its lines."""

    def __init__(self, config: TailConfig, output: Optional[TextIO] = None) -> None:
        self.config = config
        self.output = output if output is not None else sys.stdout
        self.handle: Optional[TailHandle] = None
        self.errors: List[TailError] = []
        self.shutdown_event: asyncio.Event = asyncio.Event()

    async def start(self) -> None:
        """Start tailing the configured path."""
        if self.config.path is None:
            raise ValueError("No file to tail: pass PATH or set TAIL_PATH")

        logger.info(
            "application_starting",
            path=str(self.config.path),
            num_lines=self.config.options.num_lines,
            watch=self.config.options.watch,
        )

        self.handle = tail(self.config.path, self.config.options)
        self.handle.on("line", self.handle_line)
        self.handle.on("error", self.handle_error)
        self.handle.on("close", self.shutdown_event.set)

    def handle_line(self, line: str) -> None:
        self.output.write(line + "\n")
        self.output.flush()

    def handle_error(self, error: TailError) -> None:
        self.errors.append(error)
        logger.error("tail_error", kind=error.kind, error=str(error))

    async def stop(self) -> None:
        """Close the tail and wait for its resources to be released."""
        if self.handle is None:
            return
        self.handle.close()
        await self.handle.wait_closed()
        logger.info("application_stopped")

    async def run(self) -> int:
        """Run until the tail closes or a shutdown is requested. Returns the exit code."""
        try:
            await self.start()
            await self.shutdown_event.wait()
        finally:
            await self.stop()
        return 1 if self.errors else 0


async def main(argv: Optional[List[str]] = None) -> int:
    """Main async entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(
            Path(args.config) if args.config else None,
            overrides={
                "path": args.path,
                "num_lines": args.num_lines,
                "watch": args.watch,
                "buffer_size": args.buffer_size,
                "encoding": args.encoding,
                "filter": args.filter,
                "invert_filter": args.invert_filter,
                "debounce_interval": args.debounce_interval,
                "log_level": args.log_level,
                "log_format": args.log_format,
            },
        )
    except (ValueError, FileNotFoundError) as e:
        print(f"filetail: {e}", file=sys.stderr)
        return 2

    setup_logging(config.log_level, config.log_format)
    app = Application(config)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, app.shutdown_event.set)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    try:
        return await app.run()
    except ValueError as e:
        logger.error("fatal_error", error=str(e))
        return 2


def cli() -> None:
    """Console script entry point."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    cli()
