"""
Configuration loading for HET.

HET keeps its state under a single home directory (default ``~/.het``):

    ~/.het/config.yaml   optional HetConfig overrides
    ~/.het/rules.yaml    global rules
    ~/.het/prompt.md     extra guidance for the semantic evaluator
    ~/.het/audit.log     audit log (JSON lines)
    ~/.het/het.log       application log

Repositories can ship ``.het/rules.yaml`` and ``.het/prompt.md``; these are
found by walking up from the working directory (see find_repo_file).

Environment overrides:
    HET_HOME               State directory
    HET_LOG_LEVEL          Logging level
    HET_SEMANTIC_BACKEND   none, keyword or ollama
"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from het.errors import ConfigError
from het.schema import HetConfig

CONFIG_FILENAME = "config.yaml"
REPO_DIRNAME = ".het"
REPO_RULES_FILENAME = "rules.yaml"
PROMPT_FILENAME = "prompt.md"
REPO_ROOT_MARKER = ".git"


def het_home() -> Path:
    """Return the HET state directory, honoring HET_HOME."""
    env_home = os.environ.get("HET_HOME")
    if env_home:
        return Path(env_home).expanduser()
    return Path.home() / ".het"


def load_config(path: Path | str | None = None) -> HetConfig:
    """
    Load configuration from YAML and the environment.

    Args:
        path: Explicit config file. Defaults to <het_home>/config.yaml,
              which may be absent.

    Returns:
        Validated HetConfig

    Raises:
        ConfigError: If the file exists but is not valid YAML or
                     does not match the schema
    """
    home = het_home()
    config_path = Path(path) if path else home / CONFIG_FILENAME

    data: dict[str, Any] = {}
    if config_path.exists():
        try:
            with config_path.open() as f:
                loaded = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(
                config_path=str(config_path),
                validation_error=str(e),
            ) from e
        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigError(
                config_path=str(config_path),
                validation_error="top level must be a mapping",
            )
        data = loaded or {}

    data.setdefault("home", str(home))

    if os.environ.get("HET_LOG_LEVEL"):
        data["log_level"] = os.environ["HET_LOG_LEVEL"]
    if os.environ.get("HET_SEMANTIC_BACKEND"):
        semantic = dict(data.get("semantic") or {})
        semantic["backend"] = os.environ["HET_SEMANTIC_BACKEND"]
        data["semantic"] = semantic

    try:
        return HetConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(
            config_path=str(config_path),
            validation_error=str(e),
        ) from e


def find_repo_file(working_dir: Path | str, relative: str) -> Path | None:
    """
    Find a repository-local HET file by walking up from working_dir.

    Each directory is checked for ``.het/<relative>``. The walk stops at
    the first directory that holds a ``.git`` entry (the repository root)
    or at the filesystem root.

    Args:
        working_dir: Directory to start from
        relative: File name under the .het directory (e.g., "rules.yaml")

    Returns:
        Path to the file, or None if not found
    """
    current = Path(working_dir).expanduser()
    try:
        current = current.resolve()
    except OSError:
        return None

    while True:
        candidate = current / REPO_DIRNAME / relative
        if candidate.is_file():
            return candidate

        if (current / REPO_ROOT_MARKER).exists():
            return None

        parent = current.parent
        if parent == current:
            return None
        current = parent
