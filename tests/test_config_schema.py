"""Tests for tracpub.config_schema."""

import pytest
from pydantic import ValidationError

from tracpub.config_schema import (
    PublishConfig,
    RemoteSettings,
    UnifiedConfig,
    apply_overrides,
    build_config,
)


class TestDefaults:
    """Zero-config defaults."""

    def test_build_config_empty(self):
        assert build_config(None) == UnifiedConfig()
        assert build_config({}) == UnifiedConfig()

    def test_publish_defaults(self):
        config = PublishConfig()
        assert config.index_path == ".tracpub/index.json"
        assert config.search_paths == ["."]
        assert config.include == ["*.md", "*.markdown"]
        assert config.renderer == "tracwiki"
        assert config.max_parallel == 4
        assert config.footer_enabled is True

    def test_remote_defaults(self):
        settings = RemoteSettings()
        assert settings.type == "trac"
        assert settings.timeout == 30.0
        assert settings.default_extra_properties == {}


class TestValidation:
    """Invalid values are rejected."""

    def test_unknown_renderer(self):
        with pytest.raises(ValidationError):
            build_config({"publish": {"renderer": "pdf"}})

    def test_unknown_remote_type(self):
        with pytest.raises(ValidationError):
            build_config({"remote": {"type": "confluence"}})

    @pytest.mark.parametrize("value", [0, 33])
    def test_max_parallel_range(self, value):
        with pytest.raises(ValidationError):
            PublishConfig(max_parallel=value)

    def test_empty_search_paths(self):
        with pytest.raises(ValidationError, match="at least one search path"):
            PublishConfig(search_paths=[])

    def test_models_are_frozen(self):
        config = PublishConfig()
        with pytest.raises(ValidationError):
            config.renderer = "html"


class TestApplyOverrides:
    """Tests for apply_overrides()."""

    def test_none_values_ignored(self):
        unified = build_config({"publish": {"renderer": "html"}})
        assert apply_overrides(unified, {"renderer": None, "type": None}) is unified

    def test_routes_keys_to_sections(self):
        unified = build_config(
            {
                "remote": {"url": "https://trac.example.com"},
                "logging": {"level": "INFO"},
            }
        )
        result = apply_overrides(
            unified,
            {
                "type": "noop",
                "timeout": 5.0,
                "renderer": "markdown",
                "exclude": ["x/*"],
            },
        )
        assert result.remote.type == "noop"
        assert result.remote.timeout == 5.0
        assert result.remote.url == "https://trac.example.com"
        assert result.publish.renderer == "markdown"
        assert result.publish.exclude == ["x/*"]
        assert result.logging.level == "INFO"

    def test_overrides_revalidated(self):
        with pytest.raises(ValidationError):
            apply_overrides(UnifiedConfig(), {"max_parallel": 0})
