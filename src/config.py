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
Configuration module for Filetail.

- TailOptions: per-tail options accepted by tail()
- TailConfig: options plus CLI/logging settings
- load_config(): CLI overrides > environment > tail.yml > defaults
"""

import codecs
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import structlog
import yaml

logger = structlog.get_logger()

CONFIG_FILE_NAME = "tail.yml"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def get_config_value(
    env_var: str,
    file_value: Any = None,
    default: Any = None,
) -> Any:
    """
    Get a configuration value from the environment or the config file.

    Tries in order:
    1. Environment variable {env_var}
    2. Value read from tail.yml
    3. Default value

    Args:
        env_var: Environment variable name (e.g., 'TAIL_NUM_LINES')
        file_value: Value from the YAML file, or None if absent
        default: Default value if not found anywhere

    Returns:
        Raw configuration value (strings from the environment are not converted)
    """
    env_value = os.getenv(env_var)
    if env_value is not None:
        logger.debug("config_value_loaded_from_env", source="environment", var=env_var)
        return env_value

    if file_value is not None:
        logger.debug("config_value_loaded_from_file", source="config_file", var=env_var)
        return file_value

    return default


def _safe_int(value: Any, field_name: str, default: int) -> int:
    """
    Safely convert value to int with proper type checking.

    Args:
        value: Value to convert (can be None, int, or str)
        field_name: Field name for error messages
        default: Default value if None

    Returns:
        Converted int value

    Raises:
        ValueError: If conversion fails
    """
    if value is None:
        return default

    if isinstance(value, bool):
        raise ValueError(f"Cannot convert {field_name} to int: bool")

    if isinstance(value, int):
        return value

    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            raise ValueError(f"Invalid integer for {field_name}: {value}")

    raise ValueError(f"Cannot convert {field_name} to int: {type(value).__name__}")


def _safe_float(value: Any, field_name: str, default: float) -> float:
    """
    Safely convert value to float with proper type checking.

    Args:
        value: Value to convert (can be None, float, int, or str)
        field_name: Field name for error messages
        default: Default value if None

    Returns:
        Converted float value

    Raises:
        ValueError: If conversion fails
    """
    if value is None:
        return default

    if isinstance(value, bool):
        raise ValueError(f"Cannot convert {field_name} to float: bool")

    if isinstance(value, (int, float)):
        return float(value)

    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            raise ValueError(f"Invalid float for {field_name}: {value}")

    raise ValueError(f"Cannot convert {field_name} to float: {type(value).__name__}")


def _safe_bool(value: Any, field_name: str, default: bool) -> bool:
    """Convert booleans and the usual true/false spellings."""
    if value is None:
        return default

    if isinstance(value, bool):
        return value

    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ValueError(f"Invalid boolean for {field_name}: {value}")

    raise ValueError(f"Cannot convert {field_name} to bool: {type(value).__name__}")


def _expand_env_vars(value: Any) -> Any:
    """
    Expand ${VAR_NAME} references in a string.

    Unknown variables are left as written.
    """
    if not isinstance(value, str):
        return value

    def replace_var(match: Any) -> str:
        var_name = match.group(1)
        return os.getenv(var_name, match.group(0))

    return re.sub(r'\$\{([^}]+)\}', replace_var, value)


def build_line_filter(
    pattern: Optional[str],
    invert: bool = False,
) -> Optional[Callable[[str], bool]]:
    """
    Build a line predicate from a regular expression.

    Returns:
        None when no pattern is given, otherwise a predicate that accepts
        lines the pattern matches (or does not match, when *invert* is set)

    Raises:
        ValueError: If the pattern does not compile
    """
    if not pattern:
        return None

    try:
        compiled = re.compile(pattern)
    except re.error as e:
        raise ValueError(f"Invalid filter pattern {pattern!r}: {e}")

    if invert:
        return lambda line: compiled.search(line) is None
    return lambda line: compiled.search(line) is not None


@dataclass
class TailOptions:
    """Options for a single tail."""

    encoding: str = "utf-8"
    """Codec used to decode emitted lines."""

    buffer_size: int = 1024
    """Maximum bytes per read, in both directions."""

    num_lines: int = 10
    """Lines emitted from the end of the file. 0 skips the backward scan."""

    watch: bool = False
    """Keep emitting appended lines after the initial dump."""

    line_filter: Optional[Callable[[str], bool]] = None
    """Predicate over a decoded line. Rejected lines are neither emitted nor counted."""

    debounce_interval: float = 0.05
    """Seconds used to coalesce bursts of change notifications."""

    def __post_init__(self) -> None:
        """Validate options after initialization."""
        try:
            codecs.lookup(self.encoding)
        except LookupError:
            raise ValueError(f"Unknown encoding: {self.encoding}")

        if isinstance(self.buffer_size, bool) or not isinstance(self.buffer_size, int):
            raise ValueError(f"buffer_size must be an int, got {type(self.buffer_size).__name__}")
        if self.buffer_size <= 0:
            raise ValueError(f"buffer_size must be > 0, got {self.buffer_size}")

        if isinstance(self.num_lines, bool) or not isinstance(self.num_lines, int):
            raise ValueError(f"num_lines must be an int, got {type(self.num_lines).__name__}")
        if self.num_lines < 0:
            raise ValueError(f"num_lines must be >= 0, got {self.num_lines}")

        if self.line_filter is not None and not callable(self.line_filter):
            raise ValueError("line_filter must be callable")

        if self.debounce_interval <= 0:
            raise ValueError(
                f"debounce_interval must be > 0, got {self.debounce_interval}"
            )


@dataclass
class TailConfig:
    """Command-line configuration."""

    path: Optional[Path] = None
    """File to tail."""

    options: TailOptions = field(default_factory=TailOptions)

    filter_pattern: Optional[str] = None
    """Regular expression lines must match (see invert_filter)."""

    invert_filter: bool = False
    """Emit lines that do NOT match filter_pattern."""

    log_level: str = "warning"
    """Logging level: debug, info, warning, error. Default: warning"""

    log_format: str = "console"
    """Logging format: console or json. Default: console"""

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.path is not None and not isinstance(self.path, Path):
            self.path = Path(self.path)

        valid_levels = {"debug", "info", "warning", "error"}
        if self.log_level.lower() not in valid_levels:
            raise ValueError(
                f"Invalid log_level '{self.log_level}'. Must be one of: {', '.join(sorted(valid_levels))}"
            )

        valid_formats = {"console", "json"}
        if self.log_format.lower() not in valid_formats:
            raise ValueError(
                f"Invalid log_format '{self.log_format}'. Must be one of: {', '.join(sorted(valid_formats))}"
            )


def _read_config_file(config_path: Optional[Path]) -> Dict[str, Any]:
    """
    Load tail.yml.

    An explicit path must exist; the implicit CONFIG_DIR/tail.yml is optional.

    Raises:
        FileNotFoundError: If an explicit config file does not exist
        ValueError: If the file is not a YAML mapping
        yaml.YAMLError: If the file is invalid YAML
    """
    if config_path is None:
        config_dir = os.getenv("CONFIG_DIR", ".")
        candidate = Path(config_dir) / CONFIG_FILE_NAME
        if not candidate.exists():
            return {}
        config_path = candidate
    elif not config_path.exists():
        raise FileNotFoundError(f"Config file not found at {config_path}")

    with open(config_path) as f:
        data = yaml.safe_load(f)

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{config_path} must contain a mapping, got {type(data).__name__}")

    logger.debug("config_file_loaded", path=str(config_path), keys=sorted(data))
    return data


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> TailConfig:
    """
    Load configuration for the command line tool.

    Priority order for each value:
    1. overrides (command line flags; None means "not given")
    2. Environment variable (TAIL_* / LOG_*)
    3. tail.yml
    4. Defaults

    Returns:
        Fully populated and validated TailConfig

    Raises:
        FileNotFoundError: If an explicit config file is missing
        ValueError: If a value is invalid
        yaml.YAMLError: If the config file is invalid YAML
    """
    file_data = _read_config_file(config_path)
    cli = {k: v for k, v in (overrides or {}).items() if v is not None}

    def resolve(key: str, env_var: str, default: Any) -> Any:
        if key in cli:
            return cli[key]
        return get_config_value(env_var, file_data.get(key), default)

    path = resolve("path", "TAIL_PATH", None)
    filter_pattern = resolve("filter", "TAIL_FILTER", None)
    invert_filter = _safe_bool(
        resolve("invert_filter", "TAIL_INVERT_FILTER", False), "invert_filter", False
    )

    options = TailOptions(
        encoding=str(resolve("encoding", "TAIL_ENCODING", "utf-8")),
        buffer_size=_safe_int(
            resolve("buffer_size", "TAIL_BUFFER_SIZE", 1024), "buffer_size", 1024
        ),
        num_lines=_safe_int(resolve("num_lines", "TAIL_NUM_LINES", 10), "num_lines", 10),
        watch=_safe_bool(resolve("watch", "TAIL_WATCH", False), "watch", False),
        line_filter=build_line_filter(filter_pattern, invert_filter),
        debounce_interval=_safe_float(
            resolve("debounce_interval", "TAIL_DEBOUNCE_INTERVAL", 0.05),
            "debounce_interval",
            0.05,
        ),
    )

    config = TailConfig(
        path=Path(_expand_env_vars(path)) if path else None,
        options=options,
        filter_pattern=filter_pattern,
        invert_filter=invert_filter,
        log_level=str(resolve("log_level", "LOG_LEVEL", "warning")),
        log_format=str(resolve("log_format", "LOG_FORMAT", "console")),
    )

    return config
