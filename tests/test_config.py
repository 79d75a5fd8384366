"""
Tests for environment-driven configuration.
"""
from pathlib import Path

import pytest

from config import (
    LAYER_DELETION_POLICY,
    AnnotationConfig,
    Config,
    CorpusConfig,
    Environment,
    LayerDeletionPolicy,
    OverlapPolicy,
    PersistenceConfig,
    SearchConfig,
    get_config,
    reload_config,
)


class TestDefaults:

    def test_layer_deletion_policy_is_reassign(self):
        assert LAYER_DELETION_POLICY is LayerDeletionPolicy.REASSIGN
        assert AnnotationConfig().layer_deletion_policy is LayerDeletionPolicy.REASSIGN

    def test_overlap_policy_defaults_to_reject(self, monkeypatch):
        monkeypatch.delenv("MARGINALIA_OVERLAP_POLICY", raising=False)
        assert AnnotationConfig().overlap_policy is OverlapPolicy.REJECT

    def test_search_defaults(self, monkeypatch):
        for name in ("SEARCH_MAX_QUERY_LENGTH", "SEARCH_DEFAULT_LIMIT", "SEARCH_CASE_SENSITIVE"):
            monkeypatch.delenv(name, raising=False)
        config = SearchConfig()
        assert config.max_query_length == 256
        assert config.default_limit is None
        assert config.case_sensitive is False


class TestEnvironment:

    def test_env_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("MARGINALIA_CORPUS", str(tmp_path / "kjv.json"))
        monkeypatch.setenv("MARGINALIA_OVERLAP_POLICY", "merge")
        monkeypatch.setenv("SEARCH_DEFAULT_LIMIT", "25")
        monkeypatch.setenv("SAVE_DEBOUNCE_SECONDS", "0")
        monkeypatch.setenv("ENVIRONMENT", "production")

        config = Config()

        assert config.corpus.corpus_path == tmp_path / "kjv.json"
        assert config.annotations.overlap_policy is OverlapPolicy.MERGE
        assert config.search.default_limit == 25
        assert config.persistence.save_debounce_seconds == 0.0
        assert config.is_production

    def test_no_corpus_path(self, monkeypatch):
        monkeypatch.delenv("MARGINALIA_CORPUS", raising=False)
        assert CorpusConfig().corpus_path is None

    def test_invalid_policy(self, monkeypatch):
        monkeypatch.setenv("MARGINALIA_OVERLAP_POLICY", "sometimes")
        with pytest.raises(ValueError):
            AnnotationConfig()

    def test_state_path(self, monkeypatch, tmp_path):
        monkeypatch.setenv("MARGINALIA_STATE", str(tmp_path / "s.json"))
        assert PersistenceConfig().state_path == Path(tmp_path / "s.json")


class TestConfigObject:

    def test_to_dict(self, config):
        data = config.to_dict()
        assert data["annotations"]["layer_deletion_policy"] == "reassign"
        assert data["corpus"]["active_translation"] == "KJV"
        assert data["persistence"]["save_debounce_seconds"] == 0.0

    def test_reload_replaces_singleton(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "testing")
        first = get_config()
        reloaded = reload_config()
        assert reloaded is not first
        assert reloaded.env is Environment.TESTING
        assert get_config() is reloaded
