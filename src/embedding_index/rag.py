"""Retrieval-augmented answers over the flat index."""

from pathlib import Path
from typing import Protocol

from loguru import logger

from embedding_index.config import WatsonxSettings
from embedding_index.embedding import EmbeddingClient
from embedding_index.index import IndexStore
from embedding_index.models import RagAnswer, RagStatus, RetrievedContext, SkippedFile
from embedding_index.search import search_index
from watsonx_mcp.client import GenerationParameters

CONTEXT_SEPARATOR = "\n\n---\n\n"
NO_DOCUMENTS_MESSAGE = "No documents found. Build index first."
NO_CONTEXT_MESSAGE = "No answer available: none of the retrieved documents could be read."
NO_ANSWER_MESSAGE = "No answer generated"

RAG_PROMPT_TEMPLATE = """You are a helpful assistant. Answer the question based on the provided context documents. If the answer is not in the context, say so.

Context Documents:
{context}

Question: {question}

Answer:"""


class TextGenerator(Protocol):
    async def generate_text(
        self, prompt: str, model_id: str, parameters: GenerationParameters | None = None
    ) -> str: ...


def build_context_block(contexts: list[RetrievedContext]) -> str:
    return CONTEXT_SEPARATOR.join(f"[{c.filename}]\n{c.content}" for c in contexts)


class RagAssembler:
    """Answer questions from the documents most similar to them."""

    def __init__(
        self,
        generator: TextGenerator,
        embedding_client: EmbeddingClient,
        store: IndexStore,
        settings: WatsonxSettings | None = None,
    ):
        self.generator = generator
        self.embedding_client = embedding_client
        self.store = store
        self.settings = settings or WatsonxSettings()

    def _source_directory(self, index_source: str | None) -> Path:
        return Path(index_source or self.settings.index.documents_path)

    def load_contexts(
        self, filenames_with_scores: list[tuple[str, float]], source_directory: Path
    ) -> tuple[list[RetrievedContext], list[SkippedFile]]:
        """Re-read retrieved documents in full, truncated to the context budget."""
        contexts: list[RetrievedContext] = []
        skipped: list[SkippedFile] = []
        budget = self.settings.index.context_chars

        for filename, similarity in filenames_with_scores:
            try:
                content = (source_directory / filename).read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Skipped source {filename}: {e}")
                skipped.append(SkippedFile(filename=filename, error=str(e)))
                continue
            contexts.append(
                RetrievedContext(filename=filename, content=content[:budget], similarity=similarity)
            )

        return contexts, skipped

    async def answer(self, question: str, top_k: int | None = None) -> RagAnswer:
        """Retrieve the top documents and generate an answer from them.

        No generation request is made when the index is empty or when none of
        the retrieved sources can be read.
        """
        if top_k is None:
            top_k = self.settings.index.rag_top_k
        logger.info(f"RAG query: {question!r}")

        index = self.store.load()
        results = await search_index(question, index, self.embedding_client, top_k)
        if not results:
            logger.warning(NO_DOCUMENTS_MESSAGE)
            return RagAnswer(status=RagStatus.NO_DOCUMENTS, answer=NO_DOCUMENTS_MESSAGE)

        contexts, skipped = self.load_contexts(
            [(r.filename, r.similarity) for r in results],
            self._source_directory(index.metadata.source_directory),
        )
        logger.info(f"Retrieved {len(contexts)} relevant documents")

        if not contexts:
            logger.warning(NO_CONTEXT_MESSAGE)
            return RagAnswer(status=RagStatus.NO_CONTEXT, answer=NO_CONTEXT_MESSAGE, skipped=skipped)

        generation = self.settings.generation
        prompt = RAG_PROMPT_TEMPLATE.format(
            context=build_context_block(contexts), question=question
        )
        logger.info(f"Generating answer with {generation.model_id}")
        text = await self.generator.generate_text(
            prompt,
            generation.model_id,
            GenerationParameters(
                max_new_tokens=generation.max_new_tokens,
                temperature=generation.temperature,
            ),
        )

        return RagAnswer(
            status=RagStatus.ANSWERED,
            answer=text.strip() or NO_ANSWER_MESSAGE,
            sources=[c.filename for c in contexts],
            contexts=contexts,
            skipped=skipped,
        )
