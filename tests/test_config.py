"""Tests for RuntimeSettings validation and environment loading."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from chroma_lens.config.runtime import EmbeddingBackend, RuntimeSettings, get_settings


def _settings(**overrides) -> RuntimeSettings:
    return RuntimeSettings(_env_file=None, **overrides)


class TestDefaults:
    def test_defaults(self):
        s = _settings()
        assert s.chroma_host is None
        assert s.chroma_port == 8000
        assert s.page_size_options == [10, 25, 50, 100]
        assert s.default_page_size == 10
        assert s.search_limit == 20
        assert s.metadata_sample_size == 100
        assert s.metadata_sample_values == 5
        assert s.embedding_provider == EmbeddingBackend.none


class TestValidation:
    @pytest.mark.parametrize("port", [0, 65536])
    def test_port_range(self, port):
        with pytest.raises(PydanticValidationError):
            _settings(chroma_port=port)

    @pytest.mark.parametrize("limit", [0, 101])
    def test_search_limit_range(self, limit):
        with pytest.raises(PydanticValidationError):
            _settings(search_limit=limit)

    def test_default_page_size_must_be_an_option(self):
        with pytest.raises(PydanticValidationError):
            _settings(default_page_size=7)

    def test_page_size_options_are_sorted_and_unique(self):
        s = _settings(page_size_options=[50, 10, 10, 20], default_page_size=20)
        assert s.page_size_options == [10, 20, 50]

    def test_page_size_options_must_be_positive(self):
        with pytest.raises(PydanticValidationError):
            _settings(page_size_options=[0, 10])

    def test_log_level_is_upper_cased(self):
        assert _settings(log_level="debug").log_level == "DEBUG"


class TestEnvironment:
    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("CHROMA_HOST", "chroma.internal")
        monkeypatch.setenv("CHROMA_PORT", "9000")
        monkeypatch.setenv("EMBEDDING_PROVIDER", "fastembed")
        monkeypatch.setenv("PAGE_SIZE_OPTIONS", "[5, 10]")
        monkeypatch.setenv("DEFAULT_PAGE_SIZE", "5")
        s = _settings()
        assert s.chroma_host == "chroma.internal"
        assert s.chroma_port == 9000
        assert s.embedding_provider == EmbeddingBackend.fastembed
        assert s.page_size_options == [5, 10]
        assert s.default_page_size == 5

    def test_get_settings_is_cached(self):
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()
