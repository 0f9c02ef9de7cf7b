"""Persistent flat embedding index.

The index is a single JSON document with ``documents``, ``embeddings`` and
``metadata``. It is never updated in place: every build produces a new
aggregate that replaces the file wholesale. Writes go to a temp file that is
renamed over the index, so a crash mid-write leaves the previous file intact.
There is no locking; with concurrent builders the last writer wins.
"""

import os
import shutil
from pathlib import Path

from loguru import logger

from embedding_index.config import EmbeddingConfig, IndexConfig
from embedding_index.embedding import EmbeddingClient, truncate
from embedding_index.models import (
    BuildResult,
    EmbeddingIndex,
    IndexedDocument,
    IndexMetadata,
    SkippedFile,
    utc_now,
)


class IndexStore:
    """Load and save the index file."""

    def __init__(self, index_path: Path | str):
        self.index_path = Path(index_path)

    def load(self) -> EmbeddingIndex:
        """Load the index, or return a fresh empty one.

        A missing file is the normal "no index yet" state. A file that is not
        valid JSON or violates the schema is backed up to ``.bak`` and
        replaced by an empty index in memory.
        """
        if not self.index_path.exists():
            return EmbeddingIndex()

        try:
            return EmbeddingIndex.model_validate_json(self.index_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load index {self.index_path}: {e}. Starting fresh.")
            backup_path = self.index_path.with_suffix(self.index_path.suffix + ".bak")
            try:
                shutil.copy(self.index_path, backup_path)
                logger.warning(f"Corrupted index backed up to {backup_path}")
            except OSError as backup_err:
                logger.error(f"Failed to back up corrupted index: {backup_err}")
            return EmbeddingIndex()

    def save(self, index: EmbeddingIndex) -> Path:
        """Stamp ``updated``/``count`` and atomically replace the index file."""
        index.metadata.updated = utc_now()
        index.metadata.count = len(index)

        self.index_path.parent.mkdir(parents=True, exist_ok=True)
        temp_file = self.index_path.with_suffix(self.index_path.suffix + ".tmp")
        try:
            with open(temp_file, "w", encoding="utf-8") as f:
                f.write(index.model_dump_json(indent=2))
                f.flush()
                os.fsync(f.fileno())

            temp_file.replace(self.index_path)
        except OSError:
            if temp_file.exists():
                temp_file.unlink()
            raise

        logger.debug(f"Saved index with {len(index)} documents to {self.index_path}")
        return self.index_path


def list_source_files(source_directory: Path, suffix: str = ".txt") -> list[Path]:
    """Return matching files in a directory, sorted by filename."""
    if not source_directory.is_dir():
        raise FileNotFoundError(f"Source directory not found: {source_directory}")
    return sorted(
        (p for p in source_directory.iterdir() if p.is_file() and p.name.endswith(suffix)),
        key=lambda p: p.name,
    )


class IndexBuilder:
    """Rebuild the index from a directory of text files.

    Handles the complete workflow:
    1. Enumerate source files in filename order
    2. Read and truncate each file
    3. Embed in fixed-size batches, one batch at a time
    4. Save the new index, replacing the old one
    """

    def __init__(
        self,
        embedding_client: EmbeddingClient,
        store: IndexStore,
        embedding_config: EmbeddingConfig | None = None,
        index_config: IndexConfig | None = None,
    ):
        self.embedding_client = embedding_client
        self.store = store
        self.embedding_config = embedding_config or EmbeddingConfig()
        self.index_config = index_config or IndexConfig()

    async def build(self, source_directory: Path | str, max_documents: int) -> BuildResult:
        """Embed up to ``max_documents`` files and save them as the new index.

        Unreadable files are reported in ``BuildResult.skipped``. An embedding
        failure aborts the build before anything is written.
        """
        source_directory = Path(source_directory)
        files = list_source_files(source_directory, self.index_config.file_suffix)
        files = files[: max(max_documents, 0)]

        batch_size = self.embedding_config.batch_size
        total_batches = (len(files) + batch_size - 1) // batch_size
        logger.info(f"Building embedding index from {source_directory}")
        logger.info(f"Found {len(files)} text files (max {max_documents})")

        index = EmbeddingIndex(
            metadata=IndexMetadata(
                source_directory=str(source_directory.resolve()),
                embedding_model=self.embedding_client.model_id,
            )
        )
        skipped: list[SkippedFile] = []

        for batch_number, start in enumerate(range(0, len(files), batch_size), start=1):
            texts: list[str] = []
            documents: list[IndexedDocument] = []

            for path in files[start : start + batch_size]:
                try:
                    content = path.read_text(encoding="utf-8")
                except (OSError, UnicodeDecodeError) as e:
                    logger.warning(f"Skipped unreadable file {path.name}: {e}")
                    skipped.append(SkippedFile(filename=path.name, error=str(e)))
                    continue

                truncated = truncate(content, self.embedding_config.max_chars)
                texts.append(truncated)
                documents.append(
                    IndexedDocument(
                        filename=path.name,
                        preview=truncated[: self.index_config.preview_chars].replace("\n", " "),
                        length=len(content),
                    )
                )

            if not texts:
                continue

            logger.info(f"Processing batch {batch_number}/{total_batches}...")
            embeddings = await self.embedding_client.embed_batch(texts)
            for document, embedding in zip(documents, embeddings, strict=True):
                index.append(document, embedding)

        self.store.save(index)
        logger.success(f"Index built with {len(index)} documents")
        logger.info(f"Saved to: {self.store.index_path}")

        return BuildResult(index=index, index_path=str(self.store.index_path), skipped=skipped)
