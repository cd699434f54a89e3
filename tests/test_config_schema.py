"""Tests for config_schema.py — unified configuration models."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from draftsync.config_schema import (
    EngineConfig,
    LoggingConfig,
    UnifiedConfig,
    build_config,
)


class TestUnifiedConfig:
    """Tests for UnifiedConfig and build_config()."""

    def test_empty_dict_produces_valid_defaults(self):
        config = build_config({})

        assert config.engine == EngineConfig()
        assert config.logging == LoggingConfig()

    def test_full_config_with_all_sections(self):
        config = build_config(
            {
                "engine": {
                    "repos_folder": "/data/repos",
                    "default_branch": "main",
                    "locked_branches": ["prod"],
                },
                "logging": {"level": "DEBUG", "file": "/tmp/ds.log"},
            }
        )

        assert config.engine.repos_folder == Path("/data/repos")
        assert config.engine.default_branch == "main"
        assert config.engine.locked_branches == ["prod"]
        assert config.logging.level == "DEBUG"
        assert config.logging.file == "/tmp/ds.log"

    def test_unknown_sections_ignored(self):
        config = build_config({"engine": {}, "providers": {"x": 1}})

        assert isinstance(config, UnifiedConfig)

    def test_frozen_model_prevents_mutation(self):
        config = build_config({})

        with pytest.raises(ValidationError):
            config.engine = EngineConfig()


class TestEngineConfig:
    """Tests for EngineConfig defaults and validation."""

    def test_zero_config_defaults(self):
        config = EngineConfig()

        assert config.yaml_apps_folder == "apps"
        assert config.default_branch == "master"
        assert config.clone_depth == 1
        assert config.max_history_depth == 1000
        assert config.cors_proxy is None
        assert config.locked_branches == []
        assert config.repo_metadata_version == "1.0"
        assert config.app_config_file == ".percyrc"
        assert config.yaml_extensions == [".yaml", ".yml"]
        assert config.repos_folder.name == "repos"
        assert config.drafts_folder.name == "drafts"
        assert config.meta_folder.name == "meta"

    def test_extensions_normalised(self):
        config = EngineConfig(yaml_extensions=["YAML", ".Yml"])

        assert config.yaml_extensions == [".yaml", ".yml"]

    @pytest.mark.parametrize("field", ["clone_depth", "max_history_depth"])
    def test_depths_must_be_positive(self, field):
        with pytest.raises(ValidationError):
            EngineConfig(**{field: 0})

    def test_frozen(self):
        config = EngineConfig()

        with pytest.raises(ValidationError):
            config.default_branch = "main"
