"""Shared test fixtures."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from code_assistant_mcp.config import ServerConfig
from code_assistant_mcp_server.context import ToolContext


@pytest.fixture()
def anyio_backend() -> str:
    """Run async tests on asyncio only."""
    return "asyncio"


@pytest.fixture()
def repo_root(tmp_path: Path) -> Path:
    """Provide a small repository tree to serve as the sandbox root."""
    root = tmp_path / "repo"
    (root / "src").mkdir(parents=True)
    (root / "docs").mkdir()
    (root / "README.md").write_text("# Demo\n\nA tiny project.\n", encoding="utf-8")
    (root / "src" / "app.py").write_text(
        "def main():\n    return 'hello'\n", encoding="utf-8"
    )
    (root / "docs" / "guide.md").write_text("Guide\n", encoding="utf-8")
    (root / "package.json").write_text(
        json.dumps(
            {
                "name": "demo",
                "version": "1.2.3",
                "description": "Demo project",
                "dependencies": {"zod": "^3.0.0", "express": "^4.0.0"},
                "devDependencies": {"vitest": "^1.0.0"},
            }
        ),
        encoding="utf-8",
    )
    return root.resolve()


@pytest.fixture()
def config(repo_root: Path) -> ServerConfig:
    """Configuration rooted at :func:`repo_root` with a small read cap."""
    return ServerConfig(root=repo_root, max_read_bytes=1024, drain_timeout=2.0)


@pytest.fixture()
def context(config: ServerConfig) -> ToolContext:
    """Tool context using the real sandbox and process runner."""
    return ToolContext.from_config(config)
