"""
Pytest configuration and fixtures for HET tests.

This module provides shared fixtures used across unit and integration tests.
"""

import tempfile
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest

from het.schema import HetConfig, HookSource, Invocation, ToolType


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def het_home(temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point HET_HOME at an empty temporary directory."""
    home = temp_dir / "het-home"
    home.mkdir()
    monkeypatch.setenv("HET_HOME", str(home))
    monkeypatch.delenv("HET_LOG_LEVEL", raising=False)
    monkeypatch.delenv("HET_SEMANTIC_BACKEND", raising=False)
    return home


@pytest.fixture
def config(temp_dir: Path) -> HetConfig:
    """Config with all state under the temporary directory and no semantic backend."""
    return HetConfig(home=temp_dir / "het-home")


@pytest.fixture
def sample_rules_yaml() -> str:
    """Return a small rules file."""
    return """
version: 1
rules:
  - name: block-prod-db
    tool: Bash
    pattern: "psql .*prod"
    action: deny
    reason: Production database access
    category: system-modification
  - name: ask-npm-publish
    tool: [Bash, PowerShell]
    pattern: "npm publish"
    action: ask
    reason: Publishing a package
    category: package-installation
"""


@pytest.fixture
def repo_dir(temp_dir: Path) -> Path:
    """A fake repository root with a .git marker."""
    repo = temp_dir / "repo"
    (repo / ".git").mkdir(parents=True)
    return repo


@pytest.fixture
def make_invocation() -> Callable[..., Invocation]:
    """Factory for Invocations with sensible defaults."""

    def _make(
        tool_type: ToolType = ToolType.BASH,
        arguments: dict[str, Any] | None = None,
        working_directory: str | None = None,
        source: HookSource = HookSource.CLAUDE_CODE,
    ) -> Invocation:
        return Invocation(
            tool_type=tool_type,
            arguments=arguments if arguments is not None else {"command": "ls"},
            tool_name=tool_type.value,
            working_directory=working_directory,
            source=source,
        )

    return _make
