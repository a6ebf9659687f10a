"""Startup configuration for the code assistant server."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from code_assistant_mcp.errors import ConfigurationError

ROOT_ENV = "MCP_REPO_ROOT"
MAX_READ_BYTES_ENV = "MCP_MAX_READ_BYTES"
TIMEOUT_ENV = "MCP_COMMAND_TIMEOUT_MS"
DRAIN_TIMEOUT_ENV = "MCP_DRAIN_TIMEOUT"
LOG_LEVEL_ENV = "MCP_LOG_LEVEL"
SEARCH_COMMAND_ENV = "RG_CMD"
SEARCH_ROOT_ENV = "SEARCH_ROOT"

DEFAULT_MAX_READ_BYTES = 200 * 1024
DEFAULT_TIMEOUT_MS = 60_000
DEFAULT_DRAIN_TIMEOUT = 5.0
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class ServerConfig:
    """Immutable process-wide settings, resolved once before the server starts.

    Attributes:
        root: Absolute sandbox root; every relative path is resolved against it.
        max_read_bytes: Upper bound on the bytes returned by a single read.
        search_command: Executable used for ripgrep searches.
        search_root: Directory (relative to root) passed to search commands.
        default_timeout_ms: Subprocess timeout used when a call supplies none.
        drain_timeout: Seconds in-flight requests may run after the client leaves.
        log_level: Level name for the diagnostic logger.

    """

    root: Path
    max_read_bytes: int = DEFAULT_MAX_READ_BYTES
    search_command: str = "rg"
    search_root: str = "."
    default_timeout_ms: int = DEFAULT_TIMEOUT_MS
    drain_timeout: float = DEFAULT_DRAIN_TIMEOUT
    log_level: str = "INFO"

    @classmethod
    def resolve(
        cls,
        *,
        root: str | None = None,
        max_read_bytes: int | None = None,
        log_level: str | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> ServerConfig:
        """Build the configuration from explicit overrides and the environment.

        Explicit arguments win over environment variables, which win over
        defaults. The root falls back to the current working directory.

        Raises:
            ConfigurationError: If the root is not an existing directory or a
                numeric setting is malformed.

        """
        env = os.environ if environ is None else environ
        raw_root = root or env.get(ROOT_ENV) or os.getcwd()
        resolved_root = Path(raw_root).expanduser().resolve()
        if not resolved_root.is_dir():
            raise ConfigurationError(
                f"Repository root is not a directory: {resolved_root}",
                str(resolved_root),
            )

        if max_read_bytes is None:
            max_read_bytes = _positive_int(
                env, MAX_READ_BYTES_ENV, DEFAULT_MAX_READ_BYTES
            )
        elif max_read_bytes <= 0:
            raise ConfigurationError("max_read_bytes must be positive", max_read_bytes)

        level = (log_level or env.get(LOG_LEVEL_ENV) or "INFO").upper()
        if level not in LOG_LEVELS:
            raise ConfigurationError(f"Unknown log level: {level}", level)

        return cls(
            root=resolved_root,
            max_read_bytes=max_read_bytes,
            search_command=env.get(SEARCH_COMMAND_ENV) or "rg",
            search_root=env.get(SEARCH_ROOT_ENV) or ".",
            default_timeout_ms=_positive_int(env, TIMEOUT_ENV, DEFAULT_TIMEOUT_MS),
            drain_timeout=_positive_float(
                env, DRAIN_TIMEOUT_ENV, DEFAULT_DRAIN_TIMEOUT
            ),
            log_level=level,
        )


def _positive_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer", raw) from None
    if value <= 0:
        raise ConfigurationError(f"{key} must be positive", raw)
    return value


def _positive_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number", raw) from None
    if value <= 0:
        raise ConfigurationError(f"{key} must be positive", raw)
    return value
