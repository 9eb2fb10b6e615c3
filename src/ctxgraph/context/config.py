"""Context configuration — persisted defaults plus per-invocation overrides.

Stored in .ctxgraph/config.json under the project root. CLI options override
the stored values for one run without rewriting the file.
"""

import json
import os
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

STATE_DIR = ".ctxgraph"
CONFIG_FILE = "config.json"
LOG_LEVEL_ENV = "CTXGRAPH_LOG_LEVEL"

SnapshotFormat = Literal["json", "pretty", "ndjson"]
CodeInclusion = Literal["none", "header", "full"]


class ContextConfig(BaseModel):
    """Options for building, packing and watching context."""

    depth: int = Field(default=1, ge=0)
    max_nodes: int = Field(default=100, ge=1)
    format: SnapshotFormat = "json"
    include_code: CodeInclusion = "header"
    include_style: bool = False
    out: str = "."
    roots: list[str] | None = None
    path_aliases: dict[str, str] = Field(default_factory=dict)
    ignore: list[str] = Field(default_factory=list)
    debounce_ms: int = Field(default=500, ge=0)
    workers: int | None = Field(default=None, ge=1)
    log_file: bool = False

    model_config = ConfigDict(frozen=True)

    def with_overrides(self, **overrides: Any) -> "ContextConfig":
        """Return a copy with every non-None override applied (and validated)."""
        updates = {key: value for key, value in overrides.items() if value is not None}
        if not updates:
            return self
        return ContextConfig.model_validate({**self.model_dump(), **updates})

    def output_dir(self, project_root: Path) -> Path:
        """Absolute directory snapshots are written to."""
        out = Path(self.out)
        return out if out.is_absolute() else project_root / out


def config_path(project_root: Path) -> Path:
    return project_root / STATE_DIR / CONFIG_FILE


def load_config(project_root: Path) -> ContextConfig:
    """Load .ctxgraph/config.json.

    Returns defaults if the file doesn't exist, is corrupt, or fails validation.

    Args:
        project_root: Root directory of the project

    Returns:
        The stored ContextConfig
    """
    path = config_path(project_root)
    if not path.exists():
        return ContextConfig()

    try:
        return ContextConfig.model_validate(json.loads(path.read_text()))
    except (json.JSONDecodeError, ValidationError, OSError):
        return ContextConfig()


def save_config(config: ContextConfig, project_root: Path) -> Path:
    """Write config to .ctxgraph/config.json, creating the directory.

    Args:
        config: Configuration to persist
        project_root: Root directory of the project

    Returns:
        Path to the written config file
    """
    path = config_path(project_root)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config.model_dump(mode="json"), indent=2))
    return path


def log_level_from_env(default: str = "INFO") -> str:
    """Log level named by CTXGRAPH_LOG_LEVEL, upper-cased."""
    return os.environ.get(LOG_LEVEL_ENV, default).upper()
