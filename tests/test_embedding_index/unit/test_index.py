"""Unit tests for index persistence and full rebuilds."""

import json
from pathlib import Path

import pytest

from embedding_index.config import EmbeddingConfig, IndexConfig
from embedding_index.index import IndexBuilder, IndexStore, list_source_files
from embedding_index.models import EmbeddingIndex, IndexedDocument, IndexMetadata


@pytest.fixture
def store(tmp_path: Path) -> IndexStore:
    return IndexStore(tmp_path / "index" / "embeddings-index.json")


def sample_index() -> EmbeddingIndex:
    return EmbeddingIndex(
        documents=[
            IndexedDocument(filename="a.txt", preview="alpha", length=5),
            IndexedDocument(filename="b.txt", preview="beta", length=4),
        ],
        embeddings=[[0.1, 0.2], [0.3, 0.4]],
        metadata=IndexMetadata(source_directory="/docs", embedding_model="test/model"),
    )


class TestIndexStore:
    def test_missing_file_loads_empty_index(self, store: IndexStore) -> None:
        index = store.load()

        assert index.is_empty
        assert index.metadata.count == 0
        assert not store.index_path.exists()

    def test_save_then_load_round_trip(self, store: IndexStore) -> None:
        saved = sample_index()

        path = store.save(saved)
        loaded = store.load()

        assert path == store.index_path
        assert loaded.documents == saved.documents
        assert loaded.embeddings == saved.embeddings
        assert loaded.metadata.count == 2
        assert loaded.metadata.updated is not None
        assert loaded.metadata.source_directory == "/docs"
        assert not store.index_path.with_suffix(".json.tmp").exists()

    def test_saved_file_uses_documented_layout(self, store: IndexStore) -> None:
        store.save(sample_index())

        raw = json.loads(store.index_path.read_text(encoding="utf-8"))

        assert set(raw) == {"documents", "embeddings", "metadata"}
        assert raw["documents"][0] == {"filename": "a.txt", "preview": "alpha", "length": 5}
        assert {"created", "updated", "count"} <= set(raw["metadata"])

    def test_save_replaces_previous_index(self, store: IndexStore) -> None:
        store.save(sample_index())
        store.save(EmbeddingIndex())

        assert store.load().is_empty

    def test_malformed_json_is_backed_up(self, store: IndexStore) -> None:
        store.index_path.parent.mkdir(parents=True)
        store.index_path.write_text("{not json", encoding="utf-8")

        index = store.load()

        assert index.is_empty
        backup = store.index_path.with_suffix(".json.bak")
        assert backup.read_text(encoding="utf-8") == "{not json"

    def test_misaligned_index_is_rejected(self, store: IndexStore) -> None:
        store.index_path.parent.mkdir(parents=True)
        store.index_path.write_text(
            json.dumps(
                {
                    "documents": [{"filename": "a.txt", "preview": "", "length": 1}],
                    "embeddings": [],
                    "metadata": {"created": "2024-01-01T00:00:00Z", "count": 1},
                }
            ),
            encoding="utf-8",
        )

        assert store.load().is_empty
        assert store.index_path.with_suffix(".json.bak").exists()

    def test_misaligned_model_raises(self) -> None:
        with pytest.raises(ValueError, match="Index is corrupt"):
            EmbeddingIndex(
                documents=[IndexedDocument(filename="a.txt", length=1)],
                embeddings=[],
            )


class TestListSourceFiles:
    def test_sorted_and_filtered_by_suffix(self, documents_dir: Path) -> None:
        (documents_dir / "notes.md").write_text("ignored", encoding="utf-8")
        (documents_dir / "nested.txt").mkdir()

        files = list_source_files(documents_dir, ".txt")

        assert [p.name for p in files] == ["a.txt", "b.txt", "c.txt"]

    def test_missing_directory_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match="Source directory not found"):
            list_source_files(tmp_path / "absent")


class TestIndexBuilder:
    @pytest.mark.asyncio
    async def test_build_embeds_documents_in_filename_order(
        self, documents_dir: Path, store: IndexStore, stub_embedder
    ) -> None:
        builder = IndexBuilder(stub_embedder, store, EmbeddingConfig(batch_size=2))

        result = await builder.build(documents_dir, max_documents=100)

        assert result.indexed_count == 3
        assert [d.filename for d in result.index.documents] == ["a.txt", "b.txt", "c.txt"]
        assert result.index.embeddings[0] == [1.0, 0.0, 0.0]
        assert result.index.embeddings[1] == [0.0, 1.0, 0.0]
        assert [len(batch) for batch in stub_embedder.batches] == [2, 1]
        assert result.index.metadata.embedding_model == "test/keyword-embedder"
        assert result.index.metadata.source_directory == str(documents_dir.resolve())
        assert store.load().documents == result.index.documents

    @pytest.mark.asyncio
    async def test_build_respects_max_documents(
        self, documents_dir: Path, store: IndexStore, stub_embedder
    ) -> None:
        result = await IndexBuilder(stub_embedder, store).build(documents_dir, max_documents=2)

        assert [d.filename for d in result.index.documents] == ["a.txt", "b.txt"]

    @pytest.mark.asyncio
    async def test_zero_max_documents_replaces_index_with_empty_one(
        self, documents_dir: Path, store: IndexStore, stub_embedder
    ) -> None:
        store.save(sample_index())

        result = await IndexBuilder(stub_embedder, store).build(documents_dir, max_documents=0)

        assert result.indexed_count == 0
        assert result.skipped == []
        assert stub_embedder.batches == []
        assert store.load().is_empty
        assert store.load().metadata.source_directory == str(documents_dir.resolve())

    @pytest.mark.asyncio
    async def test_preview_and_truncation(
        self, tmp_path: Path, store: IndexStore, stub_embedder
    ) -> None:
        source = tmp_path / "long"
        source.mkdir()
        content = "line one\nline two\n" + "x" * 1000
        (source / "long.txt").write_text(content, encoding="utf-8")
        builder = IndexBuilder(
            stub_embedder,
            store,
            EmbeddingConfig(max_chars=50),
            IndexConfig(preview_chars=20),
        )

        result = await builder.build(source, max_documents=10)

        document = result.index.documents[0]
        assert document.length == len(content)
        assert document.preview == "line one line two xx"
        assert len(stub_embedder.batches[0][0]) == 50

    @pytest.mark.asyncio
    async def test_unreadable_file_is_skipped(
        self, documents_dir: Path, store: IndexStore, stub_embedder
    ) -> None:
        (documents_dir / "broken.txt").write_bytes(b"\xff\xfe\xfa\x00bad")

        result = await IndexBuilder(stub_embedder, store).build(documents_dir, max_documents=10)

        assert [d.filename for d in result.index.documents] == ["a.txt", "b.txt", "c.txt"]
        assert [s.filename for s in result.skipped] == ["broken.txt"]

    @pytest.mark.asyncio
    async def test_empty_directory_saves_empty_index(
        self, tmp_path: Path, store: IndexStore, stub_embedder
    ) -> None:
        empty = tmp_path / "empty"
        empty.mkdir()

        result = await IndexBuilder(stub_embedder, store).build(empty, max_documents=10)

        assert result.indexed_count == 0
        assert stub_embedder.batches == []
        assert store.index_path.exists()
        assert store.load().is_empty

    @pytest.mark.asyncio
    async def test_embedding_failure_leaves_previous_index(
        self, documents_dir: Path, store: IndexStore
    ) -> None:
        store.save(sample_index())

        class FailingEmbedder:
            model_id = "test/failing"

            async def embed_batch(self, texts: list[str]) -> list[list[float]]:
                raise RuntimeError("service down")

            async def embed_single(self, text: str) -> list[float]:
                raise RuntimeError("service down")

        with pytest.raises(RuntimeError, match="service down"):
            await IndexBuilder(FailingEmbedder(), store).build(documents_dir, max_documents=10)

        assert [d.filename for d in store.load().documents] == ["a.txt", "b.txt"]
