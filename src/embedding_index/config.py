"""Configuration management for the embedding index using Hydra.

Settings are loaded from YAML files in ``embedding_index/conf/``. Secrets are
not part of this configuration; see ``watsonx_mcp.auth.Credentials``.
"""

from pathlib import Path

from hydra import compose, initialize_config_dir
from omegaconf import DictConfig, OmegaConf
from pydantic import BaseModel, Field

DEFAULT_CONFIG_DIR = Path(__file__).parent / "conf"


class EmbeddingConfig(BaseModel):
    """Embedding model configuration.

    Attributes:
        model_id: watsonx.ai embedding model identifier
        max_chars: Character budget each text is truncated to before embedding
        batch_size: Number of documents embedded per request during a build
    """

    model_id: str = "ibm/slate-125m-english-rtrvr-v2"
    max_chars: int = Field(default=500, ge=1, le=100_000)
    batch_size: int = Field(default=10, ge=1, le=1000)


class GenerationConfig(BaseModel):
    """Text generation configuration for answers and analysis.

    Attributes:
        model_id: watsonx.ai generation model identifier
        max_new_tokens: Token bound for RAG answers
        temperature: Sampling temperature for RAG answers
    """

    model_id: str = "ibm/granite-3-3-8b-instruct"
    max_new_tokens: int = Field(default=400, ge=1, le=8192)
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)


class IndexConfig(BaseModel):
    """Flat index configuration.

    Attributes:
        index_path: JSON file holding documents, embeddings and metadata
        documents_path: Directory of source text files
        file_suffix: Suffix of files picked up by a build
        max_documents: Default document cap for a build
        preview_chars: Length of the stored preview string
        context_chars: Per-document character budget in a RAG context block
        search_top_k: Results shown by the search command
        rag_top_k: Documents retrieved for a RAG answer
    """

    index_path: str = "embeddings-index.json"
    documents_path: str = "documents"
    file_suffix: str = ".txt"
    max_documents: int = Field(default=100, ge=0)
    preview_chars: int = Field(default=200, ge=0)
    context_chars: int = Field(default=1500, ge=1)
    search_top_k: int = Field(default=10, ge=1)
    rag_top_k: int = Field(default=3, ge=1)


class AnalysisConfig(BaseModel):
    """Batch document analysis configuration.

    Attributes:
        output_path: Directory batch reports are written to
        batch_count: Default number of documents processed by a batch run
    """

    output_path: str = "batch-results"
    batch_count: int = Field(default=10, ge=1)


class ServiceConfig(BaseModel):
    """Transport settings for the watsonx.ai HTTP client."""

    timeout_seconds: float = Field(default=60.0, ge=1.0, le=600.0)


class WatsonxSettings(BaseModel):
    """Top-level configuration for indexing, search, RAG and analysis."""

    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    index: IndexConfig = Field(default_factory=IndexConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    service: ServiceConfig = Field(default_factory=ServiceConfig)


def load_config(
    config_name: str = "default",
    config_path: str | Path | None = None,
    overrides: list[str] | None = None,
) -> WatsonxSettings:
    """Load settings from Hydra YAML files.

    Args:
        config_name: Name of config file (without .yaml extension)
        config_path: Path to config directory (defaults to the packaged conf/)
        overrides: List of config overrides (e.g., ["index.rag_top_k=5"])

    Returns:
        Validated configuration object

    Example:
        >>> config = load_config("default", overrides=["embedding.batch_size=5"])
        >>> config.embedding.batch_size
        5
    """
    config_path = Path(config_path or DEFAULT_CONFIG_DIR).resolve()

    if not config_path.exists():
        raise FileNotFoundError(f"Config directory not found: {config_path}")

    with initialize_config_dir(
        config_dir=str(config_path), version_base=None, job_name="embedding_index"
    ):
        cfg: DictConfig = compose(config_name=config_name, overrides=overrides or [])

    config_dict = OmegaConf.to_container(cfg, resolve=True)
    return WatsonxSettings(**config_dict)  # type: ignore[arg-type]
