"""Pytest configuration for test discovery, env, and fixtures.

This file ensures that:
- `src/` is importable
- No `WATSONX_*` variable from the developer's shell leaks into a test
- Index, search and RAG tests share a deterministic embedding stub
"""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path

import pytest

# Ensure src directory is in path for imports
repo_root = Path(__file__).parent.parent
src_path = repo_root / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

WATSONX_ENV_KEYS = (
    "WATSONX_API_KEY",
    "WATSONX_URL",
    "WATSONX_SPACE_ID",
    "WATSONX_PROJECT_ID",
    "WATSONX_API_VERSION",
    "WATSONX_CONFIG_PATH",
    "WATSONX_INDEX_PATH",
    "WATSONX_DOCUMENTS_PATH",
    "WATSONX_OUTPUT_PATH",
)


@pytest.fixture(autouse=True)
def isolated_watsonx_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in WATSONX_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def keyword_vector(text: str) -> list[float]:
    """Map text onto a 3-d vector by keyword so similarity is predictable."""
    lowered = text.lower()
    if "cat" in lowered:
        return [1.0, 0.0, 0.0]
    if "dog" in lowered:
        return [0.0, 1.0, 0.0]
    return [0.0, 0.0, 1.0]


class StubEmbeddingClient:
    """In-memory ``EmbeddingClient`` recording every batch it receives."""

    def __init__(
        self,
        vector_for: Callable[[str], list[float]] = keyword_vector,
        model_id: str = "test/keyword-embedder",
    ) -> None:
        self._vector_for = vector_for
        self._model_id = model_id
        self.batches: list[list[str]] = []

    @property
    def model_id(self) -> str:
        return self._model_id

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.batches.append(list(texts))
        return [self._vector_for(text) for text in texts]

    async def embed_single(self, text: str) -> list[float]:
        return (await self.embed_batch([text]))[0]


@pytest.fixture
def stub_embedder() -> StubEmbeddingClient:
    return StubEmbeddingClient()


@pytest.fixture
def documents_dir(tmp_path: Path) -> Path:
    """Three small documents, written out of filename order."""
    directory = tmp_path / "documents"
    directory.mkdir()
    (directory / "c.txt").write_text("Nothing about pets here.\nJust weather.", encoding="utf-8")
    (directory / "a.txt").write_text("The cat sat on the mat.", encoding="utf-8")
    (directory / "b.txt").write_text("A dog chased the ball.", encoding="utf-8")
    return directory
