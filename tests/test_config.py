"""Tests for startup configuration resolution."""

from __future__ import annotations

from pathlib import Path

import pytest

from code_assistant_mcp.config import (
    DEFAULT_MAX_READ_BYTES,
    DEFAULT_TIMEOUT_MS,
    ServerConfig,
)
from code_assistant_mcp.errors import ConfigurationError


def test_defaults(tmp_path: Path) -> None:
    config = ServerConfig.resolve(root=str(tmp_path), environ={})

    assert config.root == tmp_path.resolve()
    assert config.max_read_bytes == DEFAULT_MAX_READ_BYTES
    assert config.default_timeout_ms == DEFAULT_TIMEOUT_MS
    assert config.search_command == "rg"
    assert config.search_root == "."
    assert config.log_level == "INFO"


def test_environment_overrides_defaults(tmp_path: Path) -> None:
    environ = {
        "MCP_REPO_ROOT": str(tmp_path),
        "MCP_MAX_READ_BYTES": "4096",
        "MCP_COMMAND_TIMEOUT_MS": "2500",
        "MCP_DRAIN_TIMEOUT": "0.5",
        "MCP_LOG_LEVEL": "debug",
        "RG_CMD": "/opt/bin/rg",
        "SEARCH_ROOT": "src",
    }

    config = ServerConfig.resolve(environ=environ)

    assert config.root == tmp_path.resolve()
    assert config.max_read_bytes == 4096
    assert config.default_timeout_ms == 2500
    assert config.drain_timeout == 0.5
    assert config.log_level == "DEBUG"
    assert config.search_command == "/opt/bin/rg"
    assert config.search_root == "src"


def test_explicit_arguments_win(tmp_path: Path) -> None:
    other = tmp_path / "other"
    other.mkdir()
    environ = {"MCP_REPO_ROOT": str(tmp_path), "MCP_MAX_READ_BYTES": "4096"}

    config = ServerConfig.resolve(
        root=str(other), max_read_bytes=10, log_level="warning", environ=environ
    )

    assert config.root == other.resolve()
    assert config.max_read_bytes == 10
    assert config.log_level == "WARNING"


def test_root_must_be_a_directory(tmp_path: Path) -> None:
    missing = tmp_path / "missing"

    with pytest.raises(ConfigurationError):
        ServerConfig.resolve(root=str(missing), environ={})


@pytest.mark.parametrize(
    "environ",
    [
        {"MCP_MAX_READ_BYTES": "lots"},
        {"MCP_MAX_READ_BYTES": "0"},
        {"MCP_COMMAND_TIMEOUT_MS": "-5"},
        {"MCP_DRAIN_TIMEOUT": "soon"},
        {"MCP_LOG_LEVEL": "LOUD"},
    ],
)
def test_malformed_settings_are_rejected(
    tmp_path: Path, environ: dict[str, str]
) -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        ServerConfig.resolve(root=str(tmp_path), environ=environ)

    assert excinfo.value.error_type == "ConfigurationError"


def test_non_positive_override_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        ServerConfig.resolve(root=str(tmp_path), max_read_bytes=0, environ={})
