"""Pydantic models for the flat embedding index.

Everything read from or written to the index file is validated against
these schemas, so a corrupted file is detected at load time.
"""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator


def utc_now() -> datetime:
    return datetime.now(UTC)


class IndexedDocument(BaseModel):
    """Metadata captured for one document at index-build time.

    Attributes:
        filename: Source file name, relative to the index's source directory
        preview: Short single-line preview of the embedded text
        length: Length of the original content in characters
    """

    filename: str = Field(min_length=1)
    preview: str = ""
    length: int = Field(ge=0)


class IndexMetadata(BaseModel):
    """Bookkeeping for an index file.

    Attributes:
        created: When the index was first created
        updated: When the index was last saved (None until the first save)
        count: Number of indexed documents at the last save
        source_directory: Directory the documents were read from
        embedding_model: Model that produced the stored vectors
    """

    created: datetime = Field(default_factory=utc_now)
    updated: datetime | None = None
    count: int = Field(default=0, ge=0)
    source_directory: str | None = None
    embedding_model: str | None = None


class EmbeddingIndex(BaseModel):
    """Documents and their embeddings, positionally aligned.

    The vector at position *i* belongs to the document at position *i*.
    """

    documents: list[IndexedDocument] = Field(default_factory=list)
    embeddings: list[list[float]] = Field(default_factory=list)
    metadata: IndexMetadata = Field(default_factory=IndexMetadata)

    @model_validator(mode="after")
    def check_alignment(self) -> "EmbeddingIndex":
        if len(self.documents) != len(self.embeddings):
            raise ValueError(
                f"Index is corrupt: {len(self.documents)} documents but "
                f"{len(self.embeddings)} embeddings"
            )
        return self

    def __len__(self) -> int:
        return len(self.documents)

    @property
    def is_empty(self) -> bool:
        return not self.documents

    def append(self, document: IndexedDocument, embedding: list[float]) -> None:
        self.documents.append(document)
        self.embeddings.append(embedding)


class SearchResult(IndexedDocument):
    """A document's metadata plus its similarity to a query.

    ``similarity`` is a raw cosine value and is not clamped.
    """

    similarity: float
    rank: int = Field(ge=1)


class SkippedFile(BaseModel):
    """A source file that could not be read."""

    filename: str
    error: str


class BuildResult(BaseModel):
    """Outcome of a full index build."""

    index: EmbeddingIndex
    index_path: str
    skipped: list[SkippedFile] = Field(default_factory=list)

    @property
    def indexed_count(self) -> int:
        return len(self.index)


class RagStatus(str, Enum):
    ANSWERED = "answered"
    NO_DOCUMENTS = "no_documents"
    NO_CONTEXT = "no_context"


class RetrievedContext(BaseModel):
    """Source text loaded for one retrieved document."""

    filename: str
    content: str
    similarity: float


class RagAnswer(BaseModel):
    """Generated answer and the sources it was conditioned on."""

    status: RagStatus
    answer: str
    sources: list[str] = Field(default_factory=list)
    contexts: list[RetrievedContext] = Field(default_factory=list)
    skipped: list[SkippedFile] = Field(default_factory=list)
