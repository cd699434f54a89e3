"""Engine configuration loading.

Reads sync engine settings from explicit overrides, environment variables,
.env files, and YAML config files.

Precedence (highest to lowest):
    Overrides > Environment variables > .env file > YAML config > Built-in defaults

Environment variables (one per ``EngineConfig`` field):
    DRAFTSYNC_REPOS_FOLDER, DRAFTSYNC_DRAFTS_FOLDER, DRAFTSYNC_META_FOLDER:
        Storage roots.
    DRAFTSYNC_DEFAULT_BRANCH: Branch cloned first (default: master).
    DRAFTSYNC_CLONE_DEPTH: History depth of clones (default: 1).
    DRAFTSYNC_CORS_PROXY: HTTP proxy URL for git transport (optional).
    DRAFTSYNC_LOCKED_BRANCHES: Comma-separated branches hidden from listings.
    DRAFTSYNC_YAML_EXTENSIONS: Comma-separated configuration file extensions.
"""

import logging
import os
from typing import Any
from urllib.parse import urlparse

from dotenv import find_dotenv, load_dotenv
from pydantic import ValidationError

from .config_loader import load_hierarchical_config
from .config_schema import EngineConfig

logger = logging.getLogger(__name__)

ENV_PREFIX = "DRAFTSYNC_"
_LIST_FIELDS = ("locked_branches", "yaml_extensions")


def validate_engine_config(config: EngineConfig) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: EngineConfig instance to validate.

    Raises:
        ValueError: If the proxy URL is malformed or a branch or folder
            name is empty.
    """
    if config.cors_proxy is not None:
        proxy = config.cors_proxy.strip()
        if not proxy.startswith(("http://", "https://")):
            raise ValueError(
                f"Invalid proxy URL '{proxy}': must start with http:// or https://"
            )
        if not urlparse(proxy).hostname:
            raise ValueError(
                f"Invalid proxy URL '{proxy}': URL must include a hostname"
            )

    if not config.default_branch.strip():
        raise ValueError("Default branch cannot be empty.")

    folder = config.yaml_apps_folder
    if not folder.strip() or "/" in folder or folder in (".", ".."):
        raise ValueError(
            f"Invalid apps folder '{folder}': must be a single folder name"
        )

    for branch in config.locked_branches:
        if not branch.strip():
            raise ValueError("Locked branch names cannot be empty.")


def _env_overrides() -> dict[str, Any]:
    """Collect ``DRAFTSYNC_*`` values for every ``EngineConfig`` field."""
    values: dict[str, Any] = {}
    for name in EngineConfig.model_fields:
        raw = os.getenv(f"{ENV_PREFIX}{name.upper()}")
        if raw is None:
            continue
        if name in _LIST_FIELDS:
            values[name] = [item.strip() for item in raw.split(",") if item.strip()]
        else:
            values[name] = raw.strip()
    return values


def load_engine_config(
    overrides: dict[str, Any] | None = None,
    yaml_fallbacks: dict[str, Any] | None = None,
    use_dotenv: bool = True,
) -> EngineConfig:
    """Load engine configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        override > env var / .env > yaml_fallbacks > built-in default

    Args:
        overrides: Explicit field values, e.g. from the embedding app.
        yaml_fallbacks: Values of the YAML ``engine`` section.  When
            ``None``, config files are discovered and loaded.
        use_dotenv: Load a ``.env`` file into the environment first
            (existing variables are not overwritten).

    Returns:
        Validated EngineConfig instance.

    Raises:
        ValueError: If a value fails type or semantic validation.
    """
    if use_dotenv:
        load_dotenv(find_dotenv(usecwd=True), override=False)

    if yaml_fallbacks is None:
        yaml_fallbacks = load_hierarchical_config().get("engine") or {}

    merged: dict[str, Any] = {}
    merged.update(yaml_fallbacks)
    merged.update(_env_overrides())
    merged.update({k: v for k, v in (overrides or {}).items() if v is not None})

    try:
        config = EngineConfig(**merged)
    except ValidationError as exc:
        raise ValueError(f"Invalid engine configuration: {exc}") from None

    validate_engine_config(config)
    logger.debug("Engine configuration: %s", config)
    return config
