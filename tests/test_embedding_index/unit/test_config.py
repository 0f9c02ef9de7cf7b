"""Unit tests for configuration loading.

Tests cover:
- Hydra config loading from YAML
- Environment variable interpolation
- Config validation
- Override mechanism
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from embedding_index.config import (
    DEFAULT_CONFIG_DIR,
    IndexConfig,
    WatsonxSettings,
    load_config,
)


class TestConfigModels:
    def test_model_defaults_match_packaged_yaml(self) -> None:
        """The YAML defaults and the model defaults should agree."""
        assert load_config() == WatsonxSettings()

    def test_index_config_rejects_non_positive_top_k(self) -> None:
        with pytest.raises(ValidationError):
            IndexConfig(rag_top_k=0)


class TestLoadConfig:
    def test_load_default_config(self) -> None:
        config = load_config("default")

        assert config.embedding.model_id == "ibm/slate-125m-english-rtrvr-v2"
        assert config.embedding.max_chars == 500
        assert config.generation.model_id == "ibm/granite-3-3-8b-instruct"
        assert config.index.index_path == "embeddings-index.json"
        assert config.index.rag_top_k == 3
        assert config.analysis.output_path == "batch-results"

    def test_environment_interpolation(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("WATSONX_INDEX_PATH", "/data/index.json")
        monkeypatch.setenv("WATSONX_DOCUMENTS_PATH", "/data/docs")

        config = load_config()

        assert config.index.index_path == "/data/index.json"
        assert config.index.documents_path == "/data/docs"

    def test_overrides(self) -> None:
        config = load_config(overrides=["embedding.batch_size=5", "index.rag_top_k=7"])

        assert config.embedding.batch_size == 5
        assert config.index.rag_top_k == 7

    def test_invalid_override_fails_validation(self) -> None:
        with pytest.raises(ValidationError):
            load_config(overrides=["embedding.batch_size=0"])

    def test_missing_config_dir(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match="Config directory not found"):
            load_config(config_path=tmp_path / "nowhere")

    def test_custom_config_dir(self, tmp_path: Path) -> None:
        (tmp_path / "small.yaml").write_text(
            "embedding:\n  batch_size: 2\nindex:\n  search_top_k: 4\n", encoding="utf-8"
        )

        config = load_config("small", config_path=tmp_path)

        assert config.embedding.batch_size == 2
        assert config.index.search_top_k == 4
        assert config.generation == WatsonxSettings().generation

    def test_packaged_config_exists(self) -> None:
        assert (DEFAULT_CONFIG_DIR / "default.yaml").is_file()
