"""Collaborators shared by every tool and resource of the server."""

from __future__ import annotations

from dataclasses import dataclass

from code_assistant_mcp.config import ServerConfig
from code_assistant_mcp.process import ProcessRunner
from code_assistant_mcp.sandbox import PathSandbox


@dataclass(frozen=True)
class ToolContext:
    """Configuration plus the sandbox and runner built from it."""

    config: ServerConfig
    sandbox: PathSandbox
    runner: ProcessRunner

    @classmethod
    def from_config(cls, config: ServerConfig) -> ToolContext:
        """Wire a sandbox and a process runner rooted at ``config.root``."""
        return cls(
            config=config,
            sandbox=PathSandbox(config.root, config.max_read_bytes),
            runner=ProcessRunner(config.root, config.default_timeout_ms),
        )
