"""Unified configuration schema for draftsync.

Defines Pydantic models for the unified config structure with dedicated
sections for the sync engine and logging.

Usage:
    from draftsync.config_schema import UnifiedConfig, build_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
    engine = unified.engine
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

_DEFAULT_HOME = Path.home() / ".draftsync"


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class EngineConfig(BaseModel):
    """Sync engine settings.

    Every field has a default, so ``EngineConfig()`` is usable as is;
    the three folders are created on demand.
    """

    repos_folder: Path = Field(
        default=_DEFAULT_HOME / "repos",
        description="Root of the per-user shallow clones",
    )
    drafts_folder: Path = Field(
        default=_DEFAULT_HOME / "drafts",
        description="Root of the per-user draft files",
    )
    meta_folder: Path = Field(
        default=_DEFAULT_HOME / "meta",
        description="Root of the repository metadata files",
    )
    yaml_apps_folder: str = Field(
        default="apps",
        description="Repository folder holding one sub-folder per application",
    )
    default_branch: str = Field(
        default="master",
        description="Branch cloned first and used as base for new branches",
    )
    clone_depth: int = Field(
        default=1, ge=1, description="History depth of clones"
    )
    max_history_depth: int = Field(
        default=1000,
        ge=1,
        description="Generations walked per side when searching a merge base",
    )
    cors_proxy: str | None = Field(
        default=None,
        description="HTTP proxy URL applied to every git transport call",
    )
    locked_branches: list[str] = Field(
        default_factory=list,
        description="Branches hidden from branch listings",
    )
    repo_metadata_version: str = Field(
        default="1.0",
        description="Schema version written to and expected in metadata files",
    )
    app_config_file: str = Field(
        default=".percyrc",
        description="Per-application JSON config file name",
    )
    yaml_extensions: list[str] = Field(
        default_factory=lambda: [".yaml", ".yml"],
        description="File extensions listed as configuration files",
    )

    model_config = {"frozen": True}

    @field_validator("yaml_extensions")
    @classmethod
    def _normalise_extensions(cls, value: list[str]) -> list[str]:
        return [
            ext.lower() if ext.startswith(".") else f".{ext.lower()}"
            for ext in value
        ]


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Aggregates all config sections. Every section has sensible defaults,
    so ``UnifiedConfig()`` (zero-config) is always valid.
    """

    engine: EngineConfig = Field(default_factory=EngineConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Missing sections get defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)
